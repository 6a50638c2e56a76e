# companion/models/todo.py
import uuid
from typing import Optional
from datetime import datetime

from datetime_utils import utc_now
from sqlmodel import SQLModel, Field


def _new_uid() -> str:
    return uuid.uuid4().hex.upper()


class Project(SQLModel, table=True):
    id: str = Field(default_factory=_new_uid, primary_key=True)
    title: str = Field(index=True)
    notes: Optional[str] = None
    area: Optional[str] = None
    tags: Optional[str] = None        # JSON list
    deadline: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Todo(SQLModel, table=True):
    id: str = Field(default_factory=_new_uid, primary_key=True)
    title: str
    notes: Optional[str] = None
    when: Optional[str] = None
    deadline: Optional[str] = None
    tags: Optional[str] = None        # JSON list
    project_id: Optional[str] = Field(default=None, foreign_key="project.id", index=True)
    area: Optional[str] = None
    checklist: Optional[str] = None   # JSON list
    status: str = Field(default="open", index=True)   # open / completed / canceled
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
