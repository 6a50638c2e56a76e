"""ORM models exposed by the companion application."""
from .operation import Operation, SyncQueueRecord
from .todo import Project, Todo

__all__ = ["Operation", "Project", "SyncQueueRecord", "Todo"]
