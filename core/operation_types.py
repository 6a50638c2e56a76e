"""Operation kinds and statuses understood by the sync queue."""
from __future__ import annotations

from enum import Enum
from typing import Dict, Union


class OperationType(str, Enum):
    ADD_TODO = "add_todo"
    COMPLETE_TODO = "complete_todo"
    CANCEL_TODO = "cancel_todo"
    DELETE_TODO = "delete_todo"
    UPDATE_TODO = "update_todo"
    ADD_PROJECT = "add_project"
    UPDATE_PROJECT = "update_project"
    ADD_TAGS = "add_tags"
    REMOVE_TAGS = "remove_tags"
    MOVE_TODO = "move_todo"
    SET_DUE_DATE = "set_due_date"
    CLEAR_DUE_DATE = "clear_due_date"
    # stored rows whose kind this build does not know
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        return label_of(self)

    @property
    def priority(self) -> int:
        return priority_of(self)

    @property
    def idempotent(self) -> bool:
        return is_idempotent(self)

    @property
    def creates(self) -> bool:
        return self in CREATION_KINDS

    @classmethod
    def from_db(cls, raw: str | None) -> "OperationType":
        """Lenient parsing for stored rows: unrecognised kinds become ``UNKNOWN``."""
        try:
            return parse_operation_type(raw or "")
        except ValueError:
            return cls.UNKNOWN


class OperationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"  # reserved for a future claim step
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"  # dry-run results only, never stored

    def __str__(self) -> str:
        return self.value

    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.SKIPPED)

    @classmethod
    def from_db(cls, raw: str | None) -> "OperationStatus":
        if not raw:
            return cls.PENDING
        lowered = raw.strip().lower()
        if lowered == "inprogress":
            return cls.IN_PROGRESS
        try:
            return cls(lowered)
        except ValueError:
            return cls.PENDING


# Priority 1 runs first. Deletions and completions are the most urgent,
# creations the least.
OPERATION_META: Dict[OperationType, Dict[str, Union[str, int, bool]]] = {
    OperationType.ADD_TODO: {"label": "Add Todo", "priority": 3, "idempotent": False},
    OperationType.COMPLETE_TODO: {"label": "Complete Todo", "priority": 1, "idempotent": True},
    OperationType.CANCEL_TODO: {"label": "Cancel Todo", "priority": 1, "idempotent": True},
    OperationType.DELETE_TODO: {"label": "Delete Todo", "priority": 1, "idempotent": False},
    OperationType.UPDATE_TODO: {"label": "Update Todo", "priority": 2, "idempotent": False},
    OperationType.ADD_PROJECT: {"label": "Add Project", "priority": 3, "idempotent": False},
    OperationType.UPDATE_PROJECT: {"label": "Update Project", "priority": 2, "idempotent": False},
    OperationType.ADD_TAGS: {"label": "Add Tags", "priority": 2, "idempotent": True},
    OperationType.REMOVE_TAGS: {"label": "Remove Tags", "priority": 2, "idempotent": True},
    OperationType.MOVE_TODO: {"label": "Move Todo", "priority": 2, "idempotent": False},
    OperationType.SET_DUE_DATE: {"label": "Set Due Date", "priority": 2, "idempotent": True},
    OperationType.CLEAR_DUE_DATE: {"label": "Clear Due Date", "priority": 2, "idempotent": True},
    OperationType.UNKNOWN: {"label": "Unknown", "priority": 3, "idempotent": False},
}

CREATION_KINDS = frozenset({OperationType.ADD_TODO, OperationType.ADD_PROJECT})

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def parse_operation_type(value: OperationType | str) -> OperationType:
    """Accept enum members, stored values ("add_todo") and CLI spellings ("add-todo")."""
    if isinstance(value, OperationType):
        return value
    normalized = str(value).strip().lower().replace("-", "_")
    try:
        kind = OperationType(normalized)
    except ValueError:
        raise ValueError(f"Unknown operation type: {value}") from None
    if kind is OperationType.UNKNOWN:
        raise ValueError(f"Unknown operation type: {value}")
    return kind


def parse_status(value: OperationStatus | str) -> OperationStatus:
    """Strict status parsing for user input."""
    if isinstance(value, OperationStatus):
        return value
    normalized = str(value).strip().lower().replace("-", "_")
    try:
        return OperationStatus(normalized)
    except ValueError:
        raise ValueError(f"Unknown operation status: {value}") from None


def priority_of(kind: OperationType | str) -> int:
    return int(OPERATION_META[parse_operation_type(kind)]["priority"])


def is_idempotent(kind: OperationType | str) -> bool:
    return bool(OPERATION_META[parse_operation_type(kind)]["idempotent"])


def label_of(kind: OperationType | str) -> str:
    return str(OPERATION_META[parse_operation_type(kind)]["label"])


def delay_seconds(attempts: int) -> int:
    """Backoff before the next attempt: 5s doubling per attempt, capped at five minutes."""
    attempts = max(int(attempts), 0)
    # 2**7 * 5 already exceeds the cap; avoid huge ints for large counts
    if attempts >= 7:
        return MAX_DELAY_SECONDS
    return min(BASE_DELAY_SECONDS * 2**attempts, MAX_DELAY_SECONDS)


__all__ = [
    "CREATION_KINDS",
    "OPERATION_META",
    "OperationStatus",
    "OperationType",
    "delay_seconds",
    "is_idempotent",
    "label_of",
    "parse_operation_type",
    "parse_status",
    "priority_of",
]
