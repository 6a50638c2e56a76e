"""Ad-hoc database migrations for the companion database."""

from __future__ import annotations

from sqlalchemy import text


def _column_exists(conn, table: str, column: str) -> bool:
    result = conn.execute(text(f"PRAGMA table_info('{table}')"))
    return any(row[1] == column for row in result)


def ensure_sync_queue_columns(conn) -> None:
    # Databases written before retries were tracked lack these columns.
    columns = {
        "attempts": "INTEGER NOT NULL DEFAULT 0",
        "last_attempt": "TEXT",
        "last_error": "TEXT",
        "status": "TEXT NOT NULL DEFAULT 'pending'",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "sync_queue", name):
            conn.execute(text(f"ALTER TABLE sync_queue ADD COLUMN {name} {ddl_type}"))


def normalize_sync_queue_status(conn) -> None:
    conn.execute(
        text(
            """
            UPDATE sync_queue
            SET status = 'in_progress'
            WHERE lower(status) = 'inprogress'
            """
        )
    )
    conn.execute(
        text(
            """
            UPDATE sync_queue
            SET status = lower(status)
            WHERE status != lower(status)
            """
        )
    )


def ensure_sync_queue_indexes(conn) -> None:
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS idx_sync_queue_status
            ON sync_queue (status)
            """
        )
    )
    conn.execute(
        text(
            """
            CREATE INDEX IF NOT EXISTS idx_sync_queue_status_created
            ON sync_queue (status, created_at)
            """
        )
    )


def ensure_todo_columns(conn) -> None:
    columns = {
        "area": "TEXT",
        "checklist": "TEXT",
        "canceled_at": "TEXT",
    }
    for name, ddl_type in columns.items():
        if not _column_exists(conn, "todo", name):
            conn.execute(text(f"ALTER TABLE todo ADD COLUMN {name} {ddl_type}"))


def run_all(engine) -> None:
    with engine.begin() as conn:
        # SQLModel creates the tables; these cover databases from older builds
        ensure_sync_queue_columns(conn)
        normalize_sync_queue_status(conn)
        ensure_sync_queue_indexes(conn)
        ensure_todo_columns(conn)


__all__ = ["run_all"]
