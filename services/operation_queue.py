from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.errors import OperationNotFound, QueueError, QueueStorageError
from core.operation_types import OperationStatus, parse_status
from datetime_utils import ensure_utc, hours_before, to_rfc3339_utc, utc_now
from models.operation import Operation, SyncQueueRecord, decode_payload
from storage.db import get_session


logger = logging.getLogger("todo_companion.queue")

MAX_ERROR_LENGTH = 1000


@dataclass
class QueueStats:
    pending: int
    completed: int
    failed: int
    oldest_pending: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "pending": self.pending,
            "completed": self.completed,
            "failed": self.failed,
            "oldest_pending": to_rfc3339_utc(self.oldest_pending),
        }


def _clip(error: Optional[str]) -> Optional[str]:
    if error is None:
        return None
    return error[:MAX_ERROR_LENGTH]


class OperationQueue:
    """Durable queue of operations waiting to be applied to the todo application.

    One executor owns a queue at a time. Every update rewrites the row keyed by
    id, there is no version column.
    """

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        try:
            with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Queue storage failure while trying to %s: %s", action, exc)
            raise QueueStorageError(f"Failed to {action}: {exc}") from exc

    def _load(self, session: Session, op_id: int) -> SyncQueueRecord:
        record = session.get(SyncQueueRecord, op_id)
        if record is None:
            raise OperationNotFound(op_id)
        return record

    # ----- writes -----
    def enqueue(self, operation: Operation) -> Operation:
        """Store ``operation`` as pending and assign its id.

        The payload is checked against the schema of its kind first, so a
        malformed payload is rejected here instead of burning retries later.
        """
        decode_payload(operation.operation_type, operation.payload)
        record = SyncQueueRecord(
            operation_type=operation.operation_type.value,
            payload=operation.payload,
            created_at=operation.created_at,
            attempts=operation.attempts,
            status=OperationStatus.PENDING.value,
        )
        with self._session("enqueue operation") as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            stored = Operation.from_record(record)
        operation.id = stored.id
        operation.status = stored.status
        logger.debug("Enqueued %s id=%s", stored.operation_type.value, stored.id)
        return stored

    def mark_completed(self, op_id: int) -> None:
        with self._session("mark operation completed") as session:
            record = self._load(session, op_id)
            record.status = OperationStatus.COMPLETED.value
            record.last_attempt = utc_now()
            session.add(record)
            session.commit()
        logger.debug("Operation %s completed", op_id)

    def mark_failed(self, op_id: int, error: str) -> None:
        with self._session("mark operation failed") as session:
            record = self._load(session, op_id)
            record.status = OperationStatus.FAILED.value
            record.last_attempt = utc_now()
            record.last_error = _clip(error)
            record.attempts = int(record.attempts or 0) + 1
            session.add(record)
            session.commit()
        logger.debug("Operation %s failed: %s", op_id, error)

    def record_attempt(self, op_id: int, error: Optional[str] = None) -> None:
        """Count a dispatch attempt without changing the status."""
        with self._session("record attempt") as session:
            record = self._load(session, op_id)
            record.attempts = int(record.attempts or 0) + 1
            record.last_attempt = utc_now()
            record.last_error = _clip(error)
            session.add(record)
            session.commit()

    def delete(self, op_id: int) -> bool:
        with self._session("delete operation") as session:
            record = session.get(SyncQueueRecord, op_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
        return True

    def resubmit(self, op_id: int) -> Operation:
        """Replace a failed operation with a fresh pending copy.

        The failed row is removed and the copy gets a new id and zero attempts,
        so attempt counts and terminal statuses are never rewound in place.
        """
        with self._session("resubmit operation") as session:
            record = self._load(session, op_id)
            if OperationStatus.from_db(record.status) is not OperationStatus.FAILED:
                raise QueueError(f"Operation {op_id} is {record.status}, only failed operations can be retried")
            fresh = SyncQueueRecord(
                operation_type=record.operation_type,
                payload=record.payload,
                created_at=utc_now(),
                status=OperationStatus.PENDING.value,
            )
            session.delete(record)
            session.add(fresh)
            session.commit()
            session.refresh(fresh)
            stored = Operation.from_record(fresh)
        logger.info("Operation %s resubmitted as %s", op_id, stored.id)
        return stored

    def cleanup(self, max_age_hours: float) -> int:
        """Delete completed operations created more than ``max_age_hours`` ago."""
        cutoff = hours_before(max_age_hours)
        with self._session("clean up operations") as session:
            result = session.execute(
                delete(SyncQueueRecord)
                .where(SyncQueueRecord.status == OperationStatus.COMPLETED.value)
                .where(SyncQueueRecord.created_at < cutoff)
            )
            session.commit()
            removed = int(result.rowcount or 0)
        if removed:
            logger.info("Removed %s completed operations older than %sh", removed, max_age_hours)
        return removed

    def clear(self) -> None:
        with self._session("clear queue") as session:
            session.execute(delete(SyncQueueRecord))
            session.commit()
        logger.info("Sync queue cleared")

    # ----- reads -----
    def get(self, op_id: int) -> Optional[Operation]:
        with self._session("load operation") as session:
            record = session.get(SyncQueueRecord, op_id)
            return Operation.from_record(record) if record else None

    def get_by_status(self, status: OperationStatus | str) -> List[Operation]:
        wanted = parse_status(status)
        with self._session("query operations") as session:
            stmt = (
                select(SyncQueueRecord)
                .where(SyncQueueRecord.status == wanted.value)
                .order_by(SyncQueueRecord.created_at.desc(), SyncQueueRecord.id.desc())
            )
            return [Operation.from_record(row) for row in session.exec(stmt)]

    def get_pending(self, limit: int = 100) -> List[Operation]:
        """Oldest pending operations, then ordered by priority inside that window.

        Priority only applies to the fetched window: a steady stream of new
        high-priority work never overtakes older rows outside it.
        """
        if limit <= 0:
            return []
        with self._session("query pending operations") as session:
            stmt = (
                select(SyncQueueRecord)
                .where(SyncQueueRecord.status == OperationStatus.PENDING.value)
                .order_by(SyncQueueRecord.created_at.asc(), SyncQueueRecord.id.asc())
                .limit(limit)
            )
            window = [Operation.from_record(row) for row in session.exec(stmt)]
        # sorted() is stable, so equal priorities keep FIFO order
        return sorted(window, key=lambda op: op.priority)

    def has_pending(self) -> bool:
        with self._session("query pending operations") as session:
            stmt = (
                select(SyncQueueRecord.id)
                .where(SyncQueueRecord.status == OperationStatus.PENDING.value)
                .limit(1)
            )
            return session.exec(stmt).first() is not None

    def count(self) -> int:
        with self._session("count operations") as session:
            return int(session.exec(select(func.count()).select_from(SyncQueueRecord)).one())

    def stats(self) -> QueueStats:
        with self._session("collect queue stats") as session:
            stmt = select(SyncQueueRecord.status, func.count()).group_by(SyncQueueRecord.status)
            counts = {status: int(n) for status, n in session.exec(stmt)}
            oldest = session.exec(
                select(func.min(SyncQueueRecord.created_at)).where(
                    SyncQueueRecord.status == OperationStatus.PENDING.value
                )
            ).one()
        return QueueStats(
            pending=counts.get(OperationStatus.PENDING.value, 0),
            completed=counts.get(OperationStatus.COMPLETED.value, 0),
            failed=counts.get(OperationStatus.FAILED.value, 0),
            oldest_pending=ensure_utc(oldest),
        )


__all__ = ["OperationQueue", "QueueStats"]
