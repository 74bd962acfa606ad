import logging
from datetime import datetime, timezone

from takelog.config import Settings
from takelog.exceptions import (
    CameraConfigurationLockedError,
    ProjectNotFoundError,
    ValidationError,
)
from takelog.schemas.envelope import ErrorLocation
from takelog.schemas.project import Project, ProjectCreate, ProjectSettings, ProjectSettingsUpdate
from takelog.services.take_store import TakeStore

logger = logging.getLogger(__name__)


class ProjectService:
    """Projects and their settings, cached in front of the store."""

    def __init__(self, store: TakeStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings
        self._projects: dict[str, Project] = {}

    def _check_camera_configuration(self, count: int) -> None:
        if count > self._settings.max_camera_configuration:
            raise ValidationError(
                f"Camera configuration {count} exceeds the maximum of "
                f"{self._settings.max_camera_configuration}",
                location=ErrorLocation(field="camera_configuration"),
            )

    async def create(self, data: ProjectCreate) -> Project:
        settings = data.settings
        if "camera_configuration" not in settings.model_fields_set:
            settings = settings.model_copy(
                update={"camera_configuration": max(self._settings.default_camera_configuration, 1)}
            )
        self._check_camera_configuration(settings.camera_configuration)

        project = Project(name=data.name, settings=settings)
        await self._store.save_project(project)
        self._projects[project.id] = project
        logger.info(
            f"Created project {project.id} ({project.name}, "
            f"{settings.camera_configuration} camera(s))"
        )
        return project

    async def get(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            project = await self._store.load_project(project_id)
            if project is None:
                raise ProjectNotFoundError(project_id)
            self._projects[project_id] = project
        return project

    async def update_settings(
        self,
        project_id: str,
        update: ProjectSettingsUpdate,
        *,
        has_takes: bool,
    ) -> Project:
        """Apply a settings update.

        Once takes exist only the camera count may change, and only upwards.
        """
        project = await self.get(project_id)
        changes = update.model_dump(exclude_unset=True)
        if changes.get("camera_configuration") is None:
            changes.pop("camera_configuration", None)
        current = project.settings

        if has_takes:
            requested = changes.get("camera_configuration", current.camera_configuration)
            if requested < current.camera_configuration:
                raise CameraConfigurationLockedError(current.camera_configuration, requested)
            locked = [
                name
                for name, value in changes.items()
                if name != "camera_configuration" and value != getattr(current, name)
            ]
            if locked:
                raise ValidationError(
                    f"Project settings are locked once takes exist: {', '.join(sorted(locked))}",
                    location=ErrorLocation(field=locked[0], project_id=project_id),
                )

        new_settings = ProjectSettings.model_validate({**current.model_dump(), **changes})
        self._check_camera_configuration(new_settings.camera_configuration)

        updated = project.model_copy(
            update={"settings": new_settings, "updated_at": datetime.now(timezone.utc)}
        )
        await self._store.save_project(updated)
        self._projects[project_id] = updated
        if new_settings.camera_configuration != current.camera_configuration:
            logger.info(
                f"Project {project_id} camera configuration "
                f"{current.camera_configuration} -> {new_settings.camera_configuration}"
            )
        return updated

    def mark_updated(self, project_id: str, updated_at: datetime) -> None:
        """Record a timestamp the store already persisted along with the takes."""
        project = self._projects.get(project_id)
        if project is not None:
            self._projects[project_id] = project.model_copy(update={"updated_at": updated_at})

    async def delete(self, project_id: str) -> None:
        await self.get(project_id)
        await self._store.delete_project(project_id)
        self._projects.pop(project_id, None)
        logger.info(f"Deleted project {project_id}")
