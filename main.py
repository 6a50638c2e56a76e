# companion/main.py
"""Command line entry point for the offline sync queue."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, Optional, Sequence

from core.errors import SyncError
from core.operation_types import OperationStatus, OperationType, parse_operation_type, parse_status
from core.settings import SYNC
from datetime_utils import describe_age
from models.operation import Operation
from services.operation_queue import OperationQueue
from services.sync_executor import ExecutorConfig, SyncExecutor, format_sync_result
from services.todo_target import LocalTodoTarget, TodoTarget
from storage.config import load_config
from storage.db import init_db


# CLI spellings for kinds that only need a todo id
_ID_KINDS = {
    "complete": OperationType.COMPLETE_TODO,
    "cancel": OperationType.CANCEL_TODO,
    "delete": OperationType.DELETE_TODO,
}

_STATUS_MARKS = {
    OperationStatus.PENDING: "⏳",
    OperationStatus.IN_PROGRESS: "▶",
    OperationStatus.COMPLETED: "✓",
    OperationStatus.FAILED: "✗",
    OperationStatus.SKIPPED: "○",
}


class CommandError(Exception):
    """Invalid command line usage reported to the user."""


def _dump(data) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="todo-companion",
        description="Queue todo changes while the todo app is unavailable and replay them later.",
    )
    parser.add_argument("--json", action="store_true", help="Print machine readable output.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log to stderr as well.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show pending, completed and failed counts.")

    run = sub.add_parser("run", help="Execute pending operations.")
    run.add_argument("--stop-on-error", action="store_true", help="Stop at the first failure.")
    run.add_argument("--dry-run", action="store_true", help="Show what would run without doing it.")
    run.add_argument("-n", "--limit", type=int, default=None, help="Maximum operations to execute.")

    lst = sub.add_parser("list", help="List queued operations.")
    lst.add_argument("-s", "--status", default=OperationStatus.PENDING.value, help="pending, completed or failed.")
    lst.add_argument("-n", "--limit", type=int, default=SYNC.list_limit, help="Maximum operations to show.")

    add = sub.add_parser("add", help="Queue an operation.")
    add.add_argument("-t", "--type", dest="operation", required=True, help="complete, cancel, delete, add-todo, ...")
    add.add_argument("-i", "--id", help="Target todo id.")
    add.add_argument("-p", "--payload", help="Payload as JSON.")

    retry = sub.add_parser("retry", help="Queue failed operations again.")
    retry.add_argument("--all", action="store_true", help="Retry every failed operation.")
    retry.add_argument("id", nargs="?", type=int, help="Operation id to retry.")

    clear = sub.add_parser("clear", help="Remove operations from the queue.")
    clear.add_argument("--all", action="store_true", help="Remove every operation, not just completed ones.")
    clear.add_argument("--older-than", type=float, default=None, help="Age in hours for completed cleanup.")
    clear.add_argument("-f", "--force", action="store_true", help="Required together with --all.")

    return parser


# ----- commands -----
def cmd_status(queue: OperationQueue, args) -> str:
    stats = queue.stats()
    if args.json:
        return _dump(stats.to_dict())

    lines = ["Sync Queue Status", "─" * 40]
    lines.append(f"  Pending:    {stats.pending}" + (" operations waiting" if stats.pending else ""))
    lines.append(f"  Completed:  {stats.completed} operations")
    lines.append(f"  Failed:     {stats.failed}" + (" operations need attention" if stats.failed else ""))
    if stats.oldest_pending:
        lines.append(f"  Oldest:     {describe_age(stats.oldest_pending)}")
    if stats.pending:
        lines.append("")
        lines.append("Run 'todo-companion run' to execute pending operations")
    return "\n".join(lines)


def cmd_run(queue: OperationQueue, args, target: TodoTarget) -> str:
    if args.limit is not None and args.limit <= 0:
        raise CommandError("--limit must be positive")
    config = ExecutorConfig.from_app_config(
        load_config(),
        stop_on_error=True if args.stop_on_error else None,
        dry_run=args.dry_run,
        batch_limit=args.limit,
    )
    result = SyncExecutor(target, queue, config).execute_all()
    args.exit_code = 0 if result.all_succeeded() else 1
    if args.json:
        return _dump(result.to_dict())
    if result.total() == 0:
        return "No pending operations to sync."
    return format_sync_result(result)


def cmd_list(queue: OperationQueue, args) -> str:
    try:
        status = parse_status(args.status)
    except ValueError as exc:
        raise CommandError(str(exc)) from exc
    operations = queue.get_by_status(status)[: max(args.limit, 0)]
    if args.json:
        return _dump([op.to_dict() for op in operations])
    if not operations:
        return f"No {status.value} operations in queue."

    lines = [f"{status.value.upper()} Operations ({len(operations)})", "─" * 60]
    lines.append(f"{'ID':<6} {'Type':<20} {'Created':<20} Status")
    lines.append("─" * 60)
    for op in operations:
        created = op.created_at.strftime("%Y-%m-%d %H:%M")
        lines.append(f"{op.id!s:<6} {op.operation_type.label:<20} {created:<20} {_STATUS_MARKS[op.status]}")
        if op.last_error:
            short = op.last_error if len(op.last_error) <= 50 else op.last_error[:47] + "..."
            lines.append(f"       {short}")
    return "\n".join(lines)


def build_operation(kind: str, todo_id: Optional[str], payload: Optional[str]) -> Operation:
    lowered = kind.strip().lower()
    if lowered in _ID_KINDS:
        if not todo_id:
            raise CommandError(f"ID required for {lowered}")
        return Operation.new(_ID_KINDS[lowered], {"id": todo_id})

    try:
        op_type = parse_operation_type(lowered)
    except ValueError as exc:
        raise CommandError(str(exc)) from exc
    try:
        data = json.loads(payload) if payload else {}
    except json.JSONDecodeError as exc:
        raise CommandError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise CommandError("Payload must be a JSON object")
    if todo_id and not op_type.creates:
        data.setdefault("id", todo_id)
    return Operation.new(op_type, data)


def cmd_add(queue: OperationQueue, args) -> str:
    operation = queue.enqueue(build_operation(args.operation, args.id, args.payload))
    if args.json:
        return _dump(operation.to_dict())
    return f"Queued {operation.operation_type.label} operation (ID: {operation.id})"


def cmd_retry(queue: OperationQueue, args) -> str:
    if args.id is not None:
        operation = queue.resubmit(args.id)
        if args.json:
            return _dump(operation.to_dict())
        return f"Reset operation {args.id} for retry (new ID: {operation.id})"
    if args.all:
        failed = queue.get_by_status(OperationStatus.FAILED)
        # oldest first so the fresh copies keep their relative order
        for operation in reversed(failed):
            queue.resubmit(operation.id)
        if args.json:
            return _dump({"reset": len(failed)})
        return f"Reset {len(failed)} failed operations for retry"
    raise CommandError("Specify --all or provide an operation ID")


def cmd_clear(queue: OperationQueue, args) -> str:
    if args.all:
        if not args.force:
            raise CommandError("Use --force to clear all operations")
        queue.clear()
        return _dump({"cleared": "all"}) if args.json else "Cleared all operations from queue"

    older_than = args.older_than if args.older_than is not None else load_config().cleanup_max_age_hours
    count = queue.cleanup(older_than)
    if args.json:
        return _dump({"cleared": count})
    return f"Cleared {count} completed operations older than {older_than:g} hours"


def _configure_logging(verbose: bool) -> None:
    if not verbose:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("todo_companion")
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    queue: Optional[OperationQueue] = None,
    target: Optional[TodoTarget] = None,
    out: Callable[[str], None] = print,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.exit_code = 0
    _configure_logging(args.verbose)

    if queue is None:
        init_db()
    queue = queue or OperationQueue()

    handlers = {
        "status": lambda: cmd_status(queue, args),
        "run": lambda: cmd_run(queue, args, target or LocalTodoTarget()),
        "list": lambda: cmd_list(queue, args),
        "add": lambda: cmd_add(queue, args),
        "retry": lambda: cmd_retry(queue, args),
        "clear": lambda: cmd_clear(queue, args),
    }
    try:
        out(handlers[args.command]())
    except (CommandError, SyncError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return args.exit_code


if __name__ == "__main__":
    sys.exit(main())
