"""
Pytest fixtures for takelog tests.

Engine tests run against the in-memory store; database tests use a
temporary SQLite file and are marked with @pytest.mark.requires_db.
"""

from datetime import datetime

import pytest
import pytest_asyncio

from takelog.config import Settings
from takelog.exceptions import PersistenceError
from takelog.schemas.project import Project, ProjectCreate, ProjectSettings
from takelog.schemas.take import LogSheet, TakeEditRequest
from takelog.services.take_engine import TakeEngine
from takelog.services.take_store import InMemoryTakeStore


class FlakyTakeStore(InMemoryTakeStore):
    """In-memory store whose writes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_saves = False
        self.fail_project_saves = False
        self.save_calls = 0

    async def save_project(self, project: Project) -> None:
        if self.fail_project_saves:
            raise PersistenceError("Simulated project write failure")
        await super().save_project(project)

    async def save_project_takes(
        self, project_id: str, takes: list[LogSheet], *, updated_at: datetime | None = None
    ) -> None:
        self.save_calls += 1
        if self.fail_saves:
            raise PersistenceError("Simulated storage outage")
        await super().save_project_takes(project_id, takes, updated_at=updated_at)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, storage_backend="memory")


@pytest.fixture
def store() -> FlakyTakeStore:
    return FlakyTakeStore()


@pytest.fixture
def engine(store, settings) -> TakeEngine:
    return TakeEngine(store, settings)


@pytest_asyncio.fixture
async def project(engine):
    """Single-camera project."""
    return await engine.create_project(ProjectCreate(name="Night Shoot"))


@pytest_asyncio.fixture
async def multicam_project(engine):
    """Three-camera project."""
    return await engine.create_project(
        ProjectCreate(name="Car Chase", settings=ProjectSettings(camera_configuration=3))
    )


@pytest.fixture
def take_request(project):
    """Factory for edit requests on the single-camera project."""

    def _make(scene: str = "1", take_number: int = 1, **fields) -> TakeEditRequest:
        return TakeEditRequest(project_id=project.id, scene=scene, take_number=take_number, **fields)

    return _make


@pytest.fixture
def snapshot(engine):
    """Field-for-field view of a project's takes."""

    async def _snapshot(project_id: str) -> list[dict]:
        return [t.model_dump() for t in await engine.list_takes(project_id)]

    return _snapshot
