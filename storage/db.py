# companion/storage/db.py
import logging

from sqlmodel import SQLModel, create_engine, Session

from core.settings import DB_PATH, BACKUP
from storage.backup import ensure_daily_backup

# Ensure SQLModel metadata is populated
import models.operation  # noqa: F401
import models.todo  # noqa: F401
from storage import migrations


logger = logging.getLogger("todo_companion.storage")

_engine = None


def get_engine():
    """Return (and lazily create) the engine for the companion database."""

    global _engine
    if _engine is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _engine = create_engine(f"sqlite:///{DB_PATH.as_posix()}", echo=False)
    return _engine


def init_db(engine=None):
    actual_engine = engine or get_engine()
    SQLModel.metadata.create_all(actual_engine)
    migrations.run_all(actual_engine)
    if engine is None and BACKUP.enabled:
        created = ensure_daily_backup(DB_PATH, BACKUP.directory, keep_days=BACKUP.keep_days)
        if created is not None:
            logger.info("Database backup written to %s", created)
    return actual_engine


def get_session() -> Session:
    return Session(get_engine())


def session_factory_for(engine):
    def factory() -> Session:
        return Session(engine)

    return factory
