"""
projecthub/features/projects/store.py

Project document stores.

InMemoryProjectStore is used when DATABASE_URL is unset (dev/tests);
SqlProjectStore keeps each document in a JSON column. Both replace the whole
document on save; concurrent writers to the same project race and the last
write wins.
"""

from typing import Any, Dict, List, Optional, Protocol
from datetime import datetime, timezone
import copy
import os

from sqlalchemy import select, insert, update, delete, func

from projecthub.core.database import ensure_schema, get_db_session, projects
from projecthub.core.errors import NotFoundError
from projecthub.models.project import Project


class DocumentStore(Protocol):
    def create_project(self, project: Project) -> Project: ...
    def get_project(self, project_id: str) -> Optional[Project]: ...
    def list_projects(self, owner_id: str) -> List[Project]: ...
    def count_projects(self, owner_id: str) -> int: ...
    def delete_project(self, project_id: str) -> bool: ...
    def load_document(self, project_id: str) -> Dict[str, Any]: ...
    def save_document(self, project_id: str, document: Dict[str, Any]) -> None: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryProjectStore:
    def __init__(self):
        self._projects: Dict[str, Project] = {}

    def clear(self) -> None:
        self._projects.clear()

    def create_project(self, project: Project) -> Project:
        self._projects[project.project_id] = project
        return project

    def get_project(self, project_id: str) -> Optional[Project]:
        project = self._projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    def list_projects(self, owner_id: str) -> List[Project]:
        owned = [p for p in self._projects.values() if p.owner_id == owner_id]
        return [p.model_copy(deep=True) for p in sorted(owned, key=lambda p: p.created_at)]

    def count_projects(self, owner_id: str) -> int:
        return sum(1 for p in self._projects.values() if p.owner_id == owner_id)

    def delete_project(self, project_id: str) -> bool:
        return self._projects.pop(project_id, None) is not None

    def load_document(self, project_id: str) -> Dict[str, Any]:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return copy.deepcopy(project.data_info)

    def save_document(self, project_id: str, document: Dict[str, Any]) -> None:
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found")
        self._projects[project_id] = project.model_copy(
            update={"data_info": copy.deepcopy(document), "updated_at": _now()}
        )


class SqlProjectStore:
    """SQLAlchemy Core persistence for projects."""

    def __init__(self):
        ensure_schema()

    @staticmethod
    def _to_project(row) -> Project:
        return Project(
            project_id=row.id,
            owner_id=row.owner_id,
            name=row.name,
            data_info=row.data_info or {},
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_project(self, project: Project) -> Project:
        with get_db_session() as session:
            session.execute(
                insert(projects).values(
                    id=project.project_id,
                    owner_id=project.owner_id,
                    name=project.name,
                    data_info=project.data_info,
                    created_at=project.created_at,
                    updated_at=project.updated_at,
                )
            )
        return project

    def get_project(self, project_id: str) -> Optional[Project]:
        with get_db_session() as session:
            row = session.execute(select(projects).where(projects.c.id == project_id)).first()
            return self._to_project(row) if row else None

    def list_projects(self, owner_id: str) -> List[Project]:
        with get_db_session() as session:
            rows = session.execute(
                select(projects)
                .where(projects.c.owner_id == owner_id)
                .order_by(projects.c.created_at)
            ).fetchall()
            return [self._to_project(row) for row in rows]

    def count_projects(self, owner_id: str) -> int:
        with get_db_session() as session:
            return session.execute(
                select(func.count()).select_from(projects).where(projects.c.owner_id == owner_id)
            ).scalar_one()

    def delete_project(self, project_id: str) -> bool:
        with get_db_session() as session:
            result = session.execute(delete(projects).where(projects.c.id == project_id))
            return result.rowcount > 0

    def load_document(self, project_id: str) -> Dict[str, Any]:
        with get_db_session() as session:
            row = session.execute(
                select(projects.c.data_info).where(projects.c.id == project_id)
            ).first()
            if row is None:
                raise NotFoundError("Project not found")
            return dict(row.data_info or {})

    def save_document(self, project_id: str, document: Dict[str, Any]) -> None:
        with get_db_session() as session:
            result = session.execute(
                update(projects)
                .where(projects.c.id == project_id)
                .values(data_info=document, updated_at=_now())
            )
            if result.rowcount == 0:
                raise NotFoundError("Project not found")


# In-memory stub store (fallback when DB not available)
_memory_store = InMemoryProjectStore()


def _use_persistence() -> bool:
    """Check if we should use DB persistence."""
    return os.getenv("DATABASE_URL") is not None


def get_project_store() -> DocumentStore:
    return SqlProjectStore() if _use_persistence() else _memory_store


def clear_store() -> None:
    """Clear in-memory projects (testing only)."""
    _memory_store.clear()
