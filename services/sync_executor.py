from __future__ import annotations

import logging
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Dict, List, Optional

from core.errors import (
    NotSupportedError,
    OperationNotFound,
    PayloadError,
    QueueError,
    QueueStorageError,
    SyncError,
)
from core.operation_types import OperationStatus, OperationType
from core.settings import SYNC, SYNC_LOG_PATH
from models.operation import (
    AddProjectPayload,
    AddTodoPayload,
    Operation,
    TagPayload,
    TodoIdPayload,
)
from services.operation_queue import OperationQueue
from services.todo_target import TodoTarget
from storage.config import AppConfig


MAX_ATTEMPTS_ERROR = "Max attempts exceeded"


def _ensure_logger() -> logging.Logger:
    logger = logging.getLogger("todo_companion.sync")
    if not logger.handlers:
        Path(SYNC_LOG_PATH).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            SYNC_LOG_PATH,
            maxBytes=SYNC.log_max_bytes,
            backupCount=SYNC.log_backup_count,
            encoding="utf-8",
        )
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


@dataclass
class ExecutorConfig:
    max_attempts: int = SYNC.max_attempts
    stop_on_error: bool = False
    dry_run: bool = False
    batch_limit: int = SYNC.batch_limit

    @classmethod
    def from_app_config(cls, config: AppConfig, **overrides) -> "ExecutorConfig":
        values = dict(
            max_attempts=config.max_attempts,
            stop_on_error=config.stop_on_error,
            batch_limit=config.batch_limit,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass
class ExecutionResult:
    id: int
    operation_type: OperationType
    success: bool
    error: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "operation_type": self.operation_type.value,
            "success": self.success,
            "error": self.error,
            "skipped": self.skipped,
        }


@dataclass
class SyncResult:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    results: List[ExecutionResult] = field(default_factory=list)

    def add(self, result: ExecutionResult) -> None:
        if result.skipped:
            self.skipped += 1
        elif result.success:
            self.succeeded += 1
        else:
            self.failed += 1
        self.results.append(result)

    def all_succeeded(self) -> bool:
        return self.failed == 0

    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped

    def errors(self, limit: Optional[int] = None) -> List[ExecutionResult]:
        found = [r for r in self.results if r.error is not None]
        return found if limit is None else found[:limit]

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "total": self.total(),
        }


class SyncExecutor:
    """Applies queued operations to the todo application, one at a time."""

    def __init__(
        self,
        target: TodoTarget,
        queue: Optional[OperationQueue] = None,
        config: Optional[ExecutorConfig] = None,
    ) -> None:
        self.target = target
        self.queue = queue or OperationQueue()
        self.config = config or ExecutorConfig()
        self.logger = _ensure_logger()
        self._handlers: Dict[OperationType, Callable[[Operation], None]] = {
            OperationType.ADD_TODO: self._add_todo,
            OperationType.COMPLETE_TODO: self._complete_todo,
            OperationType.CANCEL_TODO: self._cancel_todo,
            OperationType.DELETE_TODO: self._delete_todo,
            OperationType.UPDATE_TODO: self._unsupported("Update todo not yet implemented via sync"),
            OperationType.ADD_PROJECT: self._add_project,
            OperationType.UPDATE_PROJECT: self._unsupported("Update project not implemented"),
            OperationType.ADD_TAGS: self._add_tags,
            OperationType.REMOVE_TAGS: self._unsupported("Remove tags not implemented"),
            OperationType.MOVE_TODO: self._unsupported("Move todo not yet implemented via sync"),
            OperationType.SET_DUE_DATE: self._unsupported("Set due date not yet implemented via sync"),
            OperationType.CLEAR_DUE_DATE: self._unsupported("Clear due date not yet implemented via sync"),
            OperationType.UNKNOWN: self._unknown_kind,
        }

    # ------------------------------------------------------------------
    # Public API
    def execute_all(self) -> SyncResult:
        pending = self.queue.get_pending(self.config.batch_limit)
        batch = sorted(pending, key=lambda op: op.priority)
        result = SyncResult()
        if batch:
            self.logger.info(
                "Sync run started: %s operations%s", len(batch), " (dry run)" if self.config.dry_run else ""
            )

        for operation in batch:
            op_result = self.execute_one(operation)
            result.add(op_result)
            if not op_result.success and self.config.stop_on_error:
                self.logger.info("Stopping after failure of operation %s", operation.id)
                break

        if batch:
            self.logger.info(
                "Sync run finished: %s succeeded, %s failed, %s skipped",
                result.succeeded,
                result.failed,
                result.skipped,
            )
        return result

    def execute_one(self, operation: Operation) -> ExecutionResult:
        if operation.id is None:
            raise QueueError("Operation must be enqueued before it can be executed")
        op_id = operation.id

        # the caller's copy may be stale; only the stored row decides
        current = self.queue.get(op_id)
        if current is None:
            raise OperationNotFound(op_id)
        if current.status is not OperationStatus.PENDING:
            error_msg = f"Operation {op_id} is {current.status.value}, not pending"
            self.logger.warning("Skipping operation %s: %s", op_id, error_msg)
            return ExecutionResult(op_id, current.operation_type, success=False, error=error_msg)
        operation = current
        exhausted = operation.attempts >= self.config.max_attempts

        # a dry run never writes, not even for exhausted operations
        if self.config.dry_run:
            if exhausted:
                self.logger.info("Dry run: operation %s would be marked failed (%s)", op_id, MAX_ATTEMPTS_ERROR)
            return ExecutionResult(op_id, operation.operation_type, success=True, skipped=True)

        if exhausted:
            self.queue.mark_failed(op_id, MAX_ATTEMPTS_ERROR)
            self.logger.error(
                "Operation %s (%s) already used %s attempts; marked failed",
                op_id,
                operation.kind_name,
                operation.attempts,
            )
            return ExecutionResult(op_id, operation.operation_type, success=False, error=MAX_ATTEMPTS_ERROR)

        try:
            self._dispatch(operation)
        except QueueStorageError:
            raise
        except SyncError as exc:
            return self._record_failure(operation, str(exc) or exc.__class__.__name__)
        except Exception as exc:
            self.logger.exception("Unexpected error while applying operation %s (%s)", op_id, operation.kind_name)
            return self._record_failure(operation, str(exc) or exc.__class__.__name__)

        self.queue.mark_completed(op_id)
        self.logger.info("Operation %s (%s) applied", op_id, operation.kind_name)
        return ExecutionResult(op_id, operation.operation_type, success=True)

    def _record_failure(self, operation: Operation, error_msg: str) -> ExecutionResult:
        op_id = operation.id
        self.queue.record_attempt(op_id, error_msg)
        if operation.attempts + 1 >= self.config.max_attempts:
            self.queue.mark_failed(op_id, error_msg)
            self.logger.error("Operation %s (%s) failed permanently: %s", op_id, operation.kind_name, error_msg)
        else:
            self.logger.warning(
                "Operation %s (%s) failed, attempt %s of %s: %s",
                op_id,
                operation.kind_name,
                operation.attempts + 1,
                self.config.max_attempts,
                error_msg,
            )
        return ExecutionResult(op_id, operation.operation_type, success=False, error=error_msg)

    # ------------------------------------------------------------------
    # Dispatch
    def _dispatch(self, operation: Operation) -> None:
        self._handlers[operation.operation_type](operation)

    def _add_todo(self, operation: Operation) -> None:
        data: AddTodoPayload = operation.parsed_payload()
        self.target.add_todo(
            data.title,
            notes=data.notes,
            when=data.when,
            deadline=data.deadline,
            tags=data.tags,
            project=data.project,
            area=data.area,
            checklist=data.checklist,
        )

    def _complete_todo(self, operation: Operation) -> None:
        data: TodoIdPayload = operation.parsed_payload()
        self.target.complete_todo(data.id)

    def _cancel_todo(self, operation: Operation) -> None:
        data: TodoIdPayload = operation.parsed_payload()
        self.target.cancel_todo(data.id)

    def _delete_todo(self, operation: Operation) -> None:
        data: TodoIdPayload = operation.parsed_payload()
        self.target.delete_todo(data.id)

    def _add_project(self, operation: Operation) -> None:
        data: AddProjectPayload = operation.parsed_payload()
        self.target.add_project(
            data.title,
            notes=data.notes,
            area=data.area,
            tags=data.tags,
            deadline=data.deadline,
        )

    def _add_tags(self, operation: Operation) -> None:
        data: TagPayload = operation.parsed_payload()
        # the todo must exist even though merging tags is not available yet
        self.target.get_todo(data.id)
        raise NotSupportedError("Add tags not yet implemented via sync")

    def _unknown_kind(self, operation: Operation) -> None:
        raise PayloadError(f"Unknown operation type: {operation.kind_name}")

    @staticmethod
    def _unsupported(message: str) -> Callable[[Operation], None]:
        def handler(operation: Operation) -> None:
            raise NotSupportedError(message)

        return handler


def format_sync_result(result: SyncResult, *, max_errors: int = SYNC.summary_error_count) -> str:
    lines = [f"Sync completed: {result.total()} operations", "─" * 40]
    if result.succeeded:
        lines.append(f"  ✓ {result.succeeded} succeeded")
    if result.failed:
        lines.append(f"  ✗ {result.failed} failed")
    if result.skipped:
        lines.append(f"  ○ {result.skipped} skipped")

    errors = result.errors(max_errors)
    if errors:
        lines.append("")
        lines.append("Errors:")
        for err in errors:
            lines.append(f"  - {err.operation_type.label}: {err.error or 'Unknown error'}")
    return "\n".join(lines)


__all__ = [
    "ExecutionResult",
    "ExecutorConfig",
    "MAX_ATTEMPTS_ERROR",
    "SyncExecutor",
    "SyncResult",
    "format_sync_result",
]
