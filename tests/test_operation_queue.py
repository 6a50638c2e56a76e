from datetime import timedelta

import pytest
from sqlmodel import SQLModel

from core.errors import OperationNotFound, PayloadError, QueueError, QueueStorageError
from core.operation_types import OperationStatus, OperationType
from datetime_utils import utc_now
from models.operation import Operation, SyncQueueRecord
from services.operation_queue import OperationQueue


def _aged(op: Operation, hours: float) -> Operation:
    op.created_at = utc_now() - timedelta(hours=hours)
    return op


def test_enqueue_assigns_id_and_pending_status(queue):
    op = Operation.add_todo("Buy milk")
    stored = queue.enqueue(op)

    assert stored.id is not None
    assert op.id == stored.id
    assert stored.status is OperationStatus.PENDING
    assert stored.attempts == 0

    loaded = queue.get(stored.id)
    assert loaded is not None
    assert loaded.operation_type is OperationType.ADD_TODO
    assert loaded.payload == op.payload
    assert loaded.created_at == stored.created_at


def test_enqueue_rejects_malformed_payload(queue):
    op = Operation(operation_type=OperationType.COMPLETE_TODO, payload='{"title": "no id"}')
    with pytest.raises(PayloadError):
        queue.enqueue(op)
    assert queue.count() == 0


def test_get_unknown_id_returns_none(queue):
    assert queue.get(999) is None


def test_get_pending_orders_by_priority_within_fifo_window(queue):
    add = queue.enqueue(Operation.add_todo("X"))
    complete = queue.enqueue(Operation.complete_todo("A"))

    pending = queue.get_pending(10)

    assert [op.id for op in pending] == [complete.id, add.id]


def test_get_pending_keeps_fetch_order_for_equal_priority(queue):
    a = queue.enqueue(Operation.add_todo("a"))
    b = queue.enqueue(Operation.cancel_todo("b"))
    c = queue.enqueue(Operation.add_project("c"))
    d = queue.enqueue(Operation.set_due_date("d", "2024-12-20"))
    e = queue.enqueue(Operation.complete_todo("e"))

    pending = queue.get_pending(10)

    assert [op.id for op in pending] == [b.id, e.id, d.id, a.id, c.id]


def test_priority_only_applies_inside_the_fetched_window(queue):
    older = [queue.enqueue(Operation.add_todo(f"todo {i}")) for i in range(3)]
    queue.enqueue(Operation.complete_todo("urgent"))

    pending = queue.get_pending(2)

    assert [op.id for op in pending] == [older[0].id, older[1].id]


def test_get_pending_only_returns_pending(queue):
    done = queue.enqueue(Operation.complete_todo("A"))
    failed = queue.enqueue(Operation.cancel_todo("B"))
    waiting = queue.enqueue(Operation.delete_todo("C"))
    queue.mark_completed(done.id)
    queue.mark_failed(failed.id, "nope")

    pending = queue.get_pending(10)

    assert [op.id for op in pending] == [waiting.id]
    assert all(op.status is OperationStatus.PENDING for op in pending)


def test_get_pending_with_non_positive_limit(queue):
    queue.enqueue(Operation.complete_todo("A"))
    assert queue.get_pending(0) == []


def test_mark_completed_stamps_last_attempt(queue):
    op = queue.enqueue(Operation.complete_todo("A"))
    queue.mark_completed(op.id)

    loaded = queue.get(op.id)
    assert loaded.status is OperationStatus.COMPLETED
    assert loaded.last_attempt is not None
    assert loaded.attempts == 0


def test_mark_failed_counts_an_attempt(queue):
    op = queue.enqueue(Operation.complete_todo("A"))
    queue.mark_failed(op.id, "Things is not running")

    loaded = queue.get(op.id)
    assert loaded.status is OperationStatus.FAILED
    assert loaded.attempts == 1
    assert loaded.last_error == "Things is not running"
    assert loaded.last_attempt is not None


def test_record_attempt_keeps_status(queue):
    op = queue.enqueue(Operation.complete_todo("A"))
    queue.record_attempt(op.id, "timeout")

    loaded = queue.get(op.id)
    assert loaded.status is OperationStatus.PENDING
    assert loaded.attempts == 1
    assert loaded.last_error == "timeout"

    queue.record_attempt(op.id)
    loaded = queue.get(op.id)
    assert loaded.attempts == 2
    assert loaded.last_error is None


def test_attempts_never_decrease(queue):
    op = queue.enqueue(Operation.complete_todo("A"))
    seen = [queue.get(op.id).attempts]
    for step in ("attempt", "attempt", "fail", "attempt", "fail"):
        if step == "attempt":
            queue.record_attempt(op.id, "err")
        else:
            queue.mark_failed(op.id, "err")
        seen.append(queue.get(op.id).attempts)
    assert seen == sorted(seen)
    assert seen[-1] == 5


def test_updates_of_unknown_ids_raise(queue):
    with pytest.raises(OperationNotFound):
        queue.mark_completed(42)
    with pytest.raises(OperationNotFound):
        queue.record_attempt(42, "x")


def test_long_errors_are_clipped(queue):
    op = queue.enqueue(Operation.complete_todo("A"))
    queue.record_attempt(op.id, "x" * 5000)
    assert len(queue.get(op.id).last_error) == 1000


def test_get_by_status_newest_first(queue):
    first = queue.enqueue(_aged(Operation.complete_todo("A"), 2))
    second = queue.enqueue(Operation.complete_todo("B"))
    queue.mark_failed(first.id, "x")
    queue.mark_failed(second.id, "y")

    failed = queue.get_by_status(OperationStatus.FAILED)

    assert [op.id for op in failed] == [second.id, first.id]
    assert queue.get_by_status("pending") == []


def test_cleanup_removes_only_old_completed(queue):
    old_done = queue.enqueue(_aged(Operation.complete_todo("A"), 48))
    new_done = queue.enqueue(Operation.complete_todo("B"))
    old_failed = queue.enqueue(_aged(Operation.cancel_todo("C"), 48))
    old_pending = queue.enqueue(_aged(Operation.add_todo("D"), 48))
    queue.mark_completed(old_done.id)
    queue.mark_completed(new_done.id)
    queue.mark_failed(old_failed.id, "x")

    removed = queue.cleanup(24)

    assert removed == 1
    assert queue.get(old_done.id) is None
    assert queue.get(new_done.id) is not None
    assert queue.get(old_failed.id).status is OperationStatus.FAILED
    assert queue.get(old_pending.id).status is OperationStatus.PENDING


def test_stats(queue):
    assert queue.stats().to_dict() == {"pending": 0, "completed": 0, "failed": 0, "oldest_pending": None}

    oldest = queue.enqueue(_aged(Operation.add_todo("A"), 5))
    queue.enqueue(Operation.add_todo("B"))
    done = queue.enqueue(Operation.complete_todo("C"))
    failed = queue.enqueue(Operation.cancel_todo("D"))
    queue.mark_completed(done.id)
    queue.mark_failed(failed.id, "x")

    stats = queue.stats()
    assert (stats.pending, stats.completed, stats.failed) == (2, 1, 1)
    assert stats.oldest_pending == oldest.created_at


def test_has_pending_delete_and_clear(queue):
    assert not queue.has_pending()
    op = queue.enqueue(Operation.complete_todo("A"))
    other = queue.enqueue(Operation.complete_todo("B"))
    assert queue.has_pending()

    assert queue.delete(op.id) is True
    assert queue.delete(op.id) is False
    assert queue.count() == 1

    queue.clear()
    assert queue.count() == 0
    assert queue.get(other.id) is None
    assert not queue.has_pending()


def test_resubmit_replaces_failed_operation(queue):
    op = queue.enqueue(Operation.move_todo("A", "P"))
    queue.mark_failed(op.id, "not supported")

    fresh = queue.resubmit(op.id)

    assert fresh.status is OperationStatus.PENDING
    assert fresh.attempts == 0
    assert fresh.last_error is None
    assert fresh.payload == op.payload
    assert [p.id for p in queue.get_pending(10)] == [fresh.id]
    assert queue.get_by_status(OperationStatus.FAILED) == []


def test_resubmit_refuses_non_failed(queue):
    op = queue.enqueue(Operation.complete_todo("A"))
    with pytest.raises(QueueError):
        queue.resubmit(op.id)
    with pytest.raises(OperationNotFound):
        queue.resubmit(12345)


def test_storage_failures_surface_as_storage_errors(engine, session_factory):
    queue = OperationQueue(session_factory=session_factory)
    SQLModel.metadata.drop_all(engine, tables=[SyncQueueRecord.__table__])

    with pytest.raises(QueueStorageError):
        queue.stats()
    with pytest.raises(QueueStorageError):
        queue.enqueue(Operation.complete_todo("A"))


def test_rows_with_unknown_kind_do_not_break_reads(queue, session_factory):
    valid = queue.enqueue(Operation.complete_todo("A"))
    with session_factory() as session:
        record = SyncQueueRecord(operation_type="rename_todo", payload='{"id": "B"}')
        session.add(record)
        session.commit()
        session.refresh(record)
        odd_id = record.id

    pending = queue.get_pending(10)

    assert [op.id for op in pending] == [valid.id, odd_id]
    assert pending[1].operation_type is OperationType.UNKNOWN
    assert queue.get(odd_id).kind_name == "rename_todo"
    assert len(queue.get_by_status(OperationStatus.PENDING)) == 2
    assert queue.stats().pending == 2
