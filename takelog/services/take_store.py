"""Persistence providers for projects and their takes.

The core treats storage as a key-value store: a project record plus the full
list of its takes, loaded and saved as a unit. ``save_project_takes`` replaces
the stored list and, when given, the project's ``updated_at`` in one
transaction, so a failed save leaves both as they were.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from takelog.exceptions import PersistenceError
from takelog.models.database import build_engine, build_session_maker, init_db, session_scope
from takelog.models.log_sheet import LogSheetRecord
from takelog.models.project import ProjectRecord
from takelog.schemas.project import Project, ProjectSettings
from takelog.schemas.take import LogSheet

logger = logging.getLogger(__name__)


class TakeStore(Protocol):
    async def load_project(self, project_id: str) -> Project | None: ...

    async def save_project(self, project: Project) -> None: ...

    async def delete_project(self, project_id: str) -> None: ...

    async def load_project_takes(self, project_id: str) -> list[LogSheet]: ...

    async def save_project_takes(
        self, project_id: str, takes: list[LogSheet], *, updated_at: datetime | None = None
    ) -> None: ...


class InMemoryTakeStore:
    """Dict-backed store. Values are copied on the way in and out."""

    def __init__(self) -> None:
        self._projects: dict[str, dict] = {}
        self._takes: dict[str, list[dict]] = {}

    async def load_project(self, project_id: str) -> Project | None:
        raw = self._projects.get(project_id)
        return Project.model_validate(raw) if raw is not None else None

    async def save_project(self, project: Project) -> None:
        self._projects[project.id] = project.model_dump()

    async def delete_project(self, project_id: str) -> None:
        self._projects.pop(project_id, None)
        self._takes.pop(project_id, None)

    async def load_project_takes(self, project_id: str) -> list[LogSheet]:
        return [LogSheet.model_validate(raw) for raw in self._takes.get(project_id, [])]

    async def save_project_takes(
        self, project_id: str, takes: list[LogSheet], *, updated_at: datetime | None = None
    ) -> None:
        self._takes[project_id] = [take.model_dump() for take in takes]
        if updated_at is not None and project_id in self._projects:
            self._projects[project_id]["updated_at"] = updated_at


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on DateTime(timezone=True)
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class DatabaseTakeStore:
    """SQLAlchemy-backed store.

    Uses a synchronous session run through ``asyncio.to_thread`` so the event
    loop is never blocked by the driver. Every storage failure surfaces as
    PersistenceError.
    """

    def __init__(self, session_maker: sessionmaker[Session]) -> None:
        self._session_maker = session_maker

    @classmethod
    def from_url(cls, database_url: str, *, echo: bool = False) -> "DatabaseTakeStore":
        engine = build_engine(database_url, echo=echo)
        init_db(engine)
        return cls(build_session_maker(engine))

    async def _run(self, operation: str, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error(f"Storage failure during {operation}: {e}")
            raise PersistenceError(f"Storage failure during {operation}") from e

    # -- projects -------------------------------------------------------------

    def _load_project(self, project_id: str) -> Project | None:
        with session_scope(self._session_maker) as session:
            record = session.get(ProjectRecord, project_id)
            if record is None:
                return None
            return Project(
                id=record.id,
                name=record.name,
                settings=ProjectSettings.model_validate(record.settings or {}),
                created_at=_as_utc(record.created_at),
                updated_at=_as_utc(record.updated_at),
            )

    def _save_project(self, project: Project) -> None:
        with session_scope(self._session_maker) as session:
            record = session.get(ProjectRecord, project.id)
            if record is None:
                record = ProjectRecord(id=project.id, created_at=project.created_at)
                session.add(record)
            record.name = project.name
            record.settings = project.settings.model_dump(mode="json")
            record.updated_at = project.updated_at

    def _delete_project(self, project_id: str) -> None:
        with session_scope(self._session_maker) as session:
            session.execute(delete(LogSheetRecord).where(LogSheetRecord.project_id == project_id))
            session.execute(delete(ProjectRecord).where(ProjectRecord.id == project_id))

    async def load_project(self, project_id: str) -> Project | None:
        return await self._run("load_project", self._load_project, project_id)

    async def save_project(self, project: Project) -> None:
        await self._run("save_project", self._save_project, project)

    async def delete_project(self, project_id: str) -> None:
        await self._run("delete_project", self._delete_project, project_id)

    # -- takes ----------------------------------------------------------------

    def _load_takes(self, project_id: str) -> list[LogSheet]:
        with session_scope(self._session_maker) as session:
            rows = session.execute(
                select(LogSheetRecord.payload).where(LogSheetRecord.project_id == project_id)
            ).scalars().all()
            return [LogSheet.model_validate(payload) for payload in rows]

    def _save_takes(self, project_id: str, takes: list[LogSheet], updated_at: datetime | None) -> None:
        with session_scope(self._session_maker) as session:
            if updated_at is not None:
                session.execute(
                    update(ProjectRecord).where(ProjectRecord.id == project_id).values(updated_at=updated_at)
                )
            # Bulk delete runs immediately, so renumbered keys never collide
            # with their own previous rows.
            session.execute(delete(LogSheetRecord).where(LogSheetRecord.project_id == project_id))
            session.add_all(
                LogSheetRecord(
                    id=take.id,
                    project_id=project_id,
                    scene=take.scene,
                    take_number=take.take_number,
                    camera_id=take.camera_id,
                    payload=take.model_dump(mode="json"),
                    created_at=take.created_at,
                    updated_at=take.updated_at,
                )
                for take in takes
            )
            session.flush()

    async def load_project_takes(self, project_id: str) -> list[LogSheet]:
        return await self._run("load_project_takes", self._load_takes, project_id)

    async def save_project_takes(
        self, project_id: str, takes: list[LogSheet], *, updated_at: datetime | None = None
    ) -> None:
        await self._run("save_project_takes", self._save_takes, project_id, takes, updated_at)
        logger.debug(f"Stored {len(takes)} take(s) for project {project_id}")
