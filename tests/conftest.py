import os
import sys
import tempfile
from pathlib import Path

# Keep settings, logs and config of the test run out of the real data directory.
os.environ.setdefault("TODO_COMPANION_HOME", tempfile.mkdtemp(prefix="todo-companion-tests-"))

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401  (registers the tables)
from services.operation_queue import OperationQueue
from storage import migrations

from fakes import FakeTarget


@pytest.fixture()
def engine():
    engine = create_engine("sqlite:///:memory:")
    SQLModel.metadata.create_all(engine)
    migrations.run_all(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def queue(session_factory):
    return OperationQueue(session_factory=session_factory)


@pytest.fixture()
def target():
    return FakeTarget()
