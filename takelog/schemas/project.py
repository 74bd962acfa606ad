from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_camera_configuration(v: Any) -> Any:
    # Missing or non-positive configuration means a single camera
    if v is None:
        return 1
    if isinstance(v, int) and not isinstance(v, bool) and v < 1:
        return 1
    return v


class ProjectSettings(BaseModel):
    camera_configuration: int = Field(default=1, ge=1)
    logger_name: str | None = None
    director_name: str | None = None
    cinematographer_name: str | None = None

    @field_validator("camera_configuration", mode="before")
    @classmethod
    def normalize_camera_configuration(cls, v: Any) -> Any:
        return _normalize_camera_configuration(v)

    @property
    def is_multi_camera(self) -> bool:
        return self.camera_configuration > 1


class Project(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1, max_length=255)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)


class ProjectSettingsUpdate(BaseModel):
    camera_configuration: int | None = Field(None, ge=1)
    logger_name: str | None = None
    director_name: str | None = None
    cinematographer_name: str | None = None
