"""Dated copies of the companion database."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from shutil import copy2


logger = logging.getLogger("todo_companion.storage")


def _backup_day(path: Path, prefix: str) -> datetime | None:
    stem = path.stem
    if not stem.startswith(prefix):
        return None
    try:
        return datetime.strptime(stem[len(prefix) :], "%Y-%m-%d")
    except ValueError:
        return None


def prune_backups(backup_dir: Path, db_file: Path, *, keep_days: int) -> list[Path]:
    """Remove copies of ``db_file`` older than ``keep_days`` days, newest day included."""

    if keep_days <= 0:
        return []
    prefix = f"{db_file.stem}_"
    cutoff = datetime.now().date() - timedelta(days=keep_days - 1)
    removed: list[Path] = []
    for file in backup_dir.glob(f"{prefix}*{db_file.suffix}"):
        day = _backup_day(file, prefix)
        if day is None or day.date() >= cutoff:
            continue
        try:
            file.unlink()
        except OSError as exc:
            logger.warning("Could not remove old backup %s: %s", file, exc)
            continue
        removed.append(file)
    return removed


def ensure_daily_backup(
    db_path: str | Path,
    backup_dir: str | Path,
    *,
    keep_days: int = 7,
) -> Path | None:
    """Copy the database once per day and rotate old copies.

    Returns the path of the copy made by this call, or ``None`` when today's
    copy already existed or there is no database yet.
    """

    db_file = Path(db_path)
    if not db_file.exists():
        return None

    backups = Path(backup_dir)
    backups.mkdir(parents=True, exist_ok=True)

    today = datetime.now().date()
    destination = backups / f"{db_file.stem}_{today.isoformat()}{db_file.suffix}"

    created_path: Path | None = None
    if not destination.exists():
        copy2(db_file, destination)
        created_path = destination

    prune_backups(backups, db_file, keep_days=keep_days)
    return created_path


__all__ = ["ensure_daily_backup", "prune_backups"]
