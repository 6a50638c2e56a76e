"""Exceptions raised by the sync queue and its collaborators."""
from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for every sync-related failure."""


class PayloadError(SyncError):
    """The payload does not match the schema of its operation kind."""


class TargetError(SyncError):
    """The todo application rejected or failed a call."""


class NotSupportedError(TargetError):
    """The operation kind is accepted by the queue but cannot be applied yet."""


class QueueError(SyncError):
    """Invalid use of the operation queue."""


class OperationNotFound(QueueError):
    def __init__(self, op_id: int) -> None:
        super().__init__(f"Operation {op_id} not found")
        self.op_id = op_id


class QueueStorageError(QueueError):
    """The queue database could not be read or written."""


__all__ = [
    "NotSupportedError",
    "OperationNotFound",
    "PayloadError",
    "QueueError",
    "QueueStorageError",
    "SyncError",
    "TargetError",
]
