"""The todo application the sync queue writes to.

``TodoTarget`` is the surface the executor needs. ``LocalTodoTarget`` keeps
todos and projects in the companion database and is what the CLI runs against.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from core.errors import TargetError
from datetime_utils import utc_now
from models.todo import Project, Todo
from storage.db import get_session


logger = logging.getLogger("todo_companion.target")


class TodoTarget(Protocol):
    def add_todo(
        self,
        title: str,
        notes: Optional[str] = None,
        when: Optional[str] = None,
        deadline: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        project: Optional[str] = None,
        area: Optional[str] = None,
        checklist: Optional[Sequence[str]] = None,
    ) -> str: ...

    def complete_todo(self, todo_id: str) -> None: ...

    def cancel_todo(self, todo_id: str) -> None: ...

    def delete_todo(self, todo_id: str) -> None: ...

    def add_project(
        self,
        title: str,
        notes: Optional[str] = None,
        area: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        deadline: Optional[str] = None,
    ) -> str: ...

    def get_todo(self, todo_id: str) -> Todo: ...


def _dump_list(values: Optional[Sequence[str]]) -> Optional[str]:
    if not values:
        return None
    return json.dumps([str(v) for v in values], ensure_ascii=False)


def load_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [str(v) for v in data] if isinstance(data, list) else []


class LocalTodoTarget:
    """SQLModel-backed todo list."""

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def add_todo(
        self,
        title: str,
        notes: Optional[str] = None,
        when: Optional[str] = None,
        deadline: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        project: Optional[str] = None,
        area: Optional[str] = None,
        checklist: Optional[Sequence[str]] = None,
    ) -> str:
        if not title or not title.strip():
            raise TargetError("Todo title is required")
        with self._guard("add todo"), self._session_factory() as s:
            project_id = None
            if project:
                found = self._find_project(s, project)
                if found is None:
                    raise TargetError(f"Project not found: {project}")
                project_id = found.id
            todo = Todo(
                title=title.strip(),
                notes=notes or None,
                when=when,
                deadline=deadline,
                tags=_dump_list(tags),
                project_id=project_id,
                area=area,
                checklist=_dump_list(checklist),
            )
            s.add(todo)
            s.commit()
            s.refresh(todo)
            logger.debug("Todo added id=%s title=%s", todo.id, todo.title)
            return todo.id

    def complete_todo(self, todo_id: str) -> None:
        self._set_status(todo_id, "completed")

    def cancel_todo(self, todo_id: str) -> None:
        self._set_status(todo_id, "canceled")

    def delete_todo(self, todo_id: str) -> None:
        with self._guard("delete todo"), self._session_factory() as s:
            todo = s.get(Todo, todo_id)
            if todo is None:
                raise TargetError(f"Todo not found: {todo_id}")
            s.delete(todo)
            s.commit()

    def add_project(
        self,
        title: str,
        notes: Optional[str] = None,
        area: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        deadline: Optional[str] = None,
    ) -> str:
        if not title or not title.strip():
            raise TargetError("Project title is required")
        with self._guard("add project"), self._session_factory() as s:
            project = Project(
                title=title.strip(),
                notes=notes or None,
                area=area,
                tags=_dump_list(tags),
                deadline=deadline,
            )
            s.add(project)
            s.commit()
            s.refresh(project)
            return project.id

    def get_todo(self, todo_id: str) -> Todo:
        with self._guard("get todo"), self._session_factory() as s:
            todo = s.get(Todo, todo_id)
            if todo is None:
                raise TargetError(f"Todo not found: {todo_id}")
            return todo

    def list_todos(self, status: Optional[str] = None) -> List[Todo]:
        with self._guard("list todos"), self._session_factory() as s:
            stmt = select(Todo)
            if status:
                stmt = stmt.where(Todo.status == status)
            return list(s.exec(stmt.order_by(Todo.created_at.asc())))

    # ----- helpers -----
    def _set_status(self, todo_id: str, status: str) -> None:
        with self._guard(f"mark todo {status}"), self._session_factory() as s:
            todo = s.get(Todo, todo_id)
            if todo is None:
                raise TargetError(f"Todo not found: {todo_id}")
            now = utc_now()
            todo.status = status
            todo.updated_at = now
            if status == "completed":
                todo.completed_at = now
            elif status == "canceled":
                todo.canceled_at = now
            s.add(todo)
            s.commit()

    @staticmethod
    def _find_project(session, ref: str) -> Optional[Project]:
        project = session.get(Project, ref)
        if project is not None:
            return project
        stmt = select(Project).where(Project.title == ref).limit(1)
        return session.exec(stmt).first()

    @staticmethod
    @contextmanager
    def _guard(action: str) -> Iterator[None]:
        """Report database failures of the todo list as target errors."""
        try:
            yield
        except SQLAlchemyError as exc:
            raise TargetError(f"Could not {action}: {exc}") from exc


__all__ = ["LocalTodoTarget", "TodoTarget", "load_list"]
