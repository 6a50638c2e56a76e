"""Queued mutations against the todo application.

``SyncQueueRecord`` is the persisted row; ``Operation`` is the detached copy the
queue hands out and the executor works on. Payloads are stored as JSON text and
each kind has a fixed schema below.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from pydantic import ValidationError
from sqlmodel import Field, SQLModel

from core.errors import PayloadError
from core.operation_types import (
    OperationStatus,
    OperationType,
    delay_seconds,
    parse_operation_type,
)
from datetime_utils import ensure_utc, to_rfc3339_utc, utc_now


# ----- payload schemas -----
class AddTodoPayload(SQLModel):
    title: str = Field(min_length=1)
    notes: Optional[str] = None
    when: Optional[str] = None
    deadline: Optional[str] = None
    tags: Optional[List[str]] = None
    project: Optional[str] = None
    area: Optional[str] = None
    checklist: Optional[List[str]] = None


class TodoIdPayload(SQLModel):
    id: str = Field(min_length=1)


class UpdateTodoPayload(SQLModel):
    id: str = Field(min_length=1)
    title: Optional[str] = None
    notes: Optional[str] = None
    when: Optional[str] = None
    deadline: Optional[str] = None
    tags: Optional[List[str]] = None


class AddProjectPayload(SQLModel):
    title: str = Field(min_length=1)
    notes: Optional[str] = None
    area: Optional[str] = None
    tags: Optional[List[str]] = None
    deadline: Optional[str] = None


class UpdateProjectPayload(SQLModel):
    id: str = Field(min_length=1)
    title: Optional[str] = None
    notes: Optional[str] = None
    area: Optional[str] = None
    tags: Optional[List[str]] = None
    deadline: Optional[str] = None


class TagPayload(SQLModel):
    id: str = Field(min_length=1)
    tags: List[str]


class MovePayload(SQLModel):
    id: str = Field(min_length=1)
    to_project: str = Field(min_length=1)


class DueDatePayload(SQLModel):
    id: str = Field(min_length=1)
    date: Optional[str] = None


PAYLOAD_SCHEMAS: Dict[OperationType, Type[SQLModel]] = {
    OperationType.ADD_TODO: AddTodoPayload,
    OperationType.COMPLETE_TODO: TodoIdPayload,
    OperationType.CANCEL_TODO: TodoIdPayload,
    OperationType.DELETE_TODO: TodoIdPayload,
    OperationType.UPDATE_TODO: UpdateTodoPayload,
    OperationType.ADD_PROJECT: AddProjectPayload,
    OperationType.UPDATE_PROJECT: UpdateProjectPayload,
    OperationType.ADD_TAGS: TagPayload,
    OperationType.REMOVE_TAGS: TagPayload,
    OperationType.MOVE_TODO: MovePayload,
    OperationType.SET_DUE_DATE: DueDatePayload,
    OperationType.CLEAR_DUE_DATE: DueDatePayload,
}

PayloadLike = Union[SQLModel, Mapping[str, Any], str]


def decode_payload(kind: OperationType | str, raw: PayloadLike) -> SQLModel:
    """Validate ``raw`` against the schema of ``kind``."""

    kind = parse_operation_type(kind)
    schema = PAYLOAD_SCHEMAS.get(kind)
    if schema is None:
        raise PayloadError(f"Unknown operation type: {kind.value}")
    if isinstance(raw, SQLModel):
        raw = raw.model_dump()
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PayloadError(f"Invalid {kind.value} payload: {exc}") from exc
    if not isinstance(raw, Mapping):
        raise PayloadError(f"Invalid {kind.value} payload: expected a JSON object")
    try:
        return schema.model_validate(dict(raw))
    except ValidationError as exc:
        raise PayloadError(f"Invalid {kind.value} payload: {exc}") from exc


def encode_payload(kind: OperationType | str, raw: PayloadLike) -> str:
    model = decode_payload(kind, raw)
    return json.dumps(model.model_dump(exclude_none=True), ensure_ascii=False)


# ----- persisted row -----
class SyncQueueRecord(SQLModel, table=True):
    __tablename__ = "sync_queue"

    id: Optional[int] = Field(default=None, primary_key=True)
    operation_type: str = Field(index=True)
    payload: str
    created_at: datetime = Field(default_factory=utc_now, index=True)
    attempts: int = Field(default=0)
    last_attempt: Optional[datetime] = None
    last_error: Optional[str] = None
    status: str = Field(default=OperationStatus.PENDING.value, index=True)


# ----- detached value -----
@dataclass
class Operation:
    operation_type: OperationType
    payload: str
    id: Optional[int] = None
    created_at: datetime = field(default_factory=utc_now)
    attempts: int = 0
    last_attempt: Optional[datetime] = None
    last_error: Optional[str] = None
    status: OperationStatus = OperationStatus.PENDING
    # raw kind of a stored row that did not parse
    stored_type: Optional[str] = None

    def __post_init__(self) -> None:
        self.operation_type = parse_operation_type(self.operation_type)
        if not isinstance(self.status, OperationStatus):
            self.status = OperationStatus.from_db(self.status)

    @classmethod
    def new(cls, kind: OperationType | str, payload: PayloadLike) -> "Operation":
        """Build a pending operation, rejecting payloads that don't fit ``kind``."""
        kind = parse_operation_type(kind)
        return cls(operation_type=kind, payload=encode_payload(kind, payload))

    @classmethod
    def from_record(cls, record: SyncQueueRecord) -> "Operation":
        kind = OperationType.from_db(record.operation_type)
        return cls(
            id=record.id,
            operation_type=kind,
            payload=record.payload,
            created_at=ensure_utc(record.created_at) or utc_now(),
            attempts=int(record.attempts or 0),
            last_attempt=ensure_utc(record.last_attempt),
            last_error=record.last_error,
            status=OperationStatus.from_db(record.status),
            stored_type=record.operation_type if kind is OperationType.UNKNOWN else None,
        )

    def to_record(self) -> SyncQueueRecord:
        return SyncQueueRecord(
            id=self.id,
            operation_type=self.kind_name,
            payload=self.payload,
            created_at=self.created_at,
            attempts=self.attempts,
            last_attempt=self.last_attempt,
            last_error=self.last_error,
            status=self.status.value,
        )

    # ----- factories -----
    @classmethod
    def add_todo(
        cls,
        title: str,
        *,
        notes: Optional[str] = None,
        when: Optional[str] = None,
        deadline: Optional[str] = None,
        tags: Optional[List[str]] = None,
        project: Optional[str] = None,
        area: Optional[str] = None,
        checklist: Optional[List[str]] = None,
    ) -> "Operation":
        payload = {
            "title": title,
            "notes": notes,
            "when": when,
            "deadline": deadline,
            "tags": tags,
            "project": project,
            "area": area,
            "checklist": checklist,
        }
        return cls.new(OperationType.ADD_TODO, payload)

    @classmethod
    def complete_todo(cls, todo_id: str) -> "Operation":
        return cls.new(OperationType.COMPLETE_TODO, {"id": todo_id})

    @classmethod
    def cancel_todo(cls, todo_id: str) -> "Operation":
        return cls.new(OperationType.CANCEL_TODO, {"id": todo_id})

    @classmethod
    def delete_todo(cls, todo_id: str) -> "Operation":
        return cls.new(OperationType.DELETE_TODO, {"id": todo_id})

    @classmethod
    def update_todo(cls, todo_id: str, **changes: Any) -> "Operation":
        return cls.new(OperationType.UPDATE_TODO, {"id": todo_id, **changes})

    @classmethod
    def add_project(
        cls,
        title: str,
        *,
        notes: Optional[str] = None,
        area: Optional[str] = None,
        tags: Optional[List[str]] = None,
        deadline: Optional[str] = None,
    ) -> "Operation":
        payload = {"title": title, "notes": notes, "area": area, "tags": tags, "deadline": deadline}
        return cls.new(OperationType.ADD_PROJECT, payload)

    @classmethod
    def update_project(cls, project_id: str, **changes: Any) -> "Operation":
        return cls.new(OperationType.UPDATE_PROJECT, {"id": project_id, **changes})

    @classmethod
    def add_tags(cls, todo_id: str, tags: List[str]) -> "Operation":
        return cls.new(OperationType.ADD_TAGS, {"id": todo_id, "tags": list(tags)})

    @classmethod
    def remove_tags(cls, todo_id: str, tags: List[str]) -> "Operation":
        return cls.new(OperationType.REMOVE_TAGS, {"id": todo_id, "tags": list(tags)})

    @classmethod
    def move_todo(cls, todo_id: str, to_project: str) -> "Operation":
        return cls.new(OperationType.MOVE_TODO, {"id": todo_id, "to_project": to_project})

    @classmethod
    def set_due_date(cls, todo_id: str, date: str) -> "Operation":
        return cls.new(OperationType.SET_DUE_DATE, {"id": todo_id, "date": date})

    @classmethod
    def clear_due_date(cls, todo_id: str) -> "Operation":
        return cls.new(OperationType.CLEAR_DUE_DATE, {"id": todo_id})

    # ----- queries -----
    @property
    def priority(self) -> int:
        return self.operation_type.priority

    @property
    def kind_name(self) -> str:
        return self.stored_type or self.operation_type.value

    def parsed_payload(self) -> SQLModel:
        if self.operation_type is OperationType.UNKNOWN:
            raise PayloadError(f"Unknown operation type: {self.kind_name}")
        return decode_payload(self.operation_type, self.payload)

    def target_id(self) -> Optional[str]:
        """Identifier of the todo/project this operation touches, if any."""
        if self.operation_type.creates:
            return None
        try:
            data = json.loads(self.payload)
        except (TypeError, json.JSONDecodeError):
            return None
        if not isinstance(data, dict):
            return None
        value = data.get("id")
        return value if isinstance(value, str) else None

    def should_retry(self, max_attempts: int) -> bool:
        return self.status is OperationStatus.PENDING and self.attempts < max_attempts

    def retry_delay_seconds(self) -> int:
        return delay_seconds(self.attempts)

    def next_retry_at(self) -> Optional[datetime]:
        if self.last_attempt is None:
            return None
        return self.last_attempt + timedelta(seconds=self.retry_delay_seconds())

    def to_dict(self) -> Dict[str, Any]:
        try:
            payload: Any = json.loads(self.payload)
        except json.JSONDecodeError:
            payload = self.payload
        return {
            "id": self.id,
            "operation_type": self.kind_name,
            "payload": payload,
            "created_at": to_rfc3339_utc(self.created_at),
            "attempts": self.attempts,
            "last_attempt": to_rfc3339_utc(self.last_attempt),
            "last_error": self.last_error,
            "status": self.status.value,
        }


__all__ = [
    "AddProjectPayload",
    "AddTodoPayload",
    "DueDatePayload",
    "MovePayload",
    "Operation",
    "PAYLOAD_SCHEMAS",
    "SyncQueueRecord",
    "TagPayload",
    "TodoIdPayload",
    "UpdateProjectPayload",
    "UpdateTodoPayload",
    "decode_payload",
    "encode_payload",
]
