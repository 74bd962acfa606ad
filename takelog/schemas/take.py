"""Schemas for log sheets (takes), edit requests, patches and conflicts."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from takelog.exceptions import InvalidNumberError
from takelog.schemas.camera import CameraRecState
from takelog.services.numbering import parse_number


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Classification(str, Enum):
    GOOD = "Good"
    WASTE = "Waste"
    INSERT = "Insert"


class WasteReason(str, Enum):
    CAMERA = "camera"
    SOUND = "sound"


class LogSheetTemplate(str, Enum):
    CAMERA_LOG = "camera_log"
    SOUND_LOG = "sound_log"
    SCRIPT_NOTES = "script_notes"
    SHOT_LIST = "shot_list"
    CONTINUITY_LOG = "continuity_log"


def _coerce_number(value: Any) -> Any:
    # Slate entries arrive as text ("007", "A12"); keep ints and None as-is
    if isinstance(value, str):
        try:
            return parse_number(value)
        except InvalidNumberError as e:
            raise ValueError(str(e)) from e
    return value


class TakeFields(BaseModel):
    """Content fields shared by stored takes and edit requests."""

    scene: str = Field(..., min_length=1, max_length=64)
    take_number: int = Field(..., ge=1)
    camera_id: int = Field(default=0, ge=0)
    file_number: int | None = Field(default=None, ge=1)
    file_number_to: int | None = Field(default=None, ge=1)
    sound_file_number: int | None = Field(default=None, ge=1)
    sound_file_number_to: int | None = Field(default=None, ge=1)
    classification: Classification | None = None
    waste_options: set[WasteReason] | None = None
    insert_sound_speed: float | None = None
    shot_details: str | None = None
    template: LogSheetTemplate = LogSheetTemplate.CAMERA_LOG
    data: dict[str, Any] = Field(default_factory=dict)
    disabled_fields: set[str] = Field(default_factory=set)
    camera_rec_state: CameraRecState | None = None

    @field_validator("scene", mode="before")
    @classmethod
    def strip_scene(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v

    @field_validator(
        "take_number", "file_number", "file_number_to", "sound_file_number", "sound_file_number_to", mode="before"
    )
    @classmethod
    def parse_numbers(cls, v: Any) -> Any:
        return _coerce_number(v)

    @model_validator(mode="after")
    def check_payloads(self):
        self._check_range("file_number", "file_number_to", "file")
        self._check_range("sound_file_number", "sound_file_number_to", "sound file")

        if not self.waste_options:
            self.waste_options = None
        if self.waste_options is not None and self.classification != Classification.WASTE:
            raise ValueError("waste_options is only allowed when classification is Waste")
        if self.insert_sound_speed is not None and self.classification != Classification.INSERT:
            raise ValueError("insert_sound_speed is only allowed when classification is Insert")
        return self

    @property
    def file_range(self) -> tuple[int, int] | None:
        """Inclusive (lower, upper) file range, or None when no file was logged."""
        if self.file_number is None:
            return None
        return self.file_number, self.file_number_to or self.file_number

    @property
    def sound_file_range(self) -> tuple[int, int] | None:
        """Inclusive sound file range; sound is shared by every camera of a slate."""
        if self.sound_file_number is None:
            return None
        return self.sound_file_number, self.sound_file_number_to or self.sound_file_number

    def _check_range(self, lower: str, upper: str, label: str) -> None:
        lo, hi = getattr(self, lower), getattr(self, upper)
        if hi is None:
            return
        if lo is None:
            raise ValueError(f"{upper} requires {lower}")
        if hi < lo:
            raise ValueError(f"{label} range end {hi} is before start {lo}")
        if hi == lo:
            setattr(self, upper, None)


class LogSheet(TakeFields):
    """A stored take."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def key(self) -> tuple[str, int, int]:
        return self.scene, self.take_number, self.camera_id


class TakeEditRequest(TakeFields):
    """Candidate mutation built by the edit screen.

    ``take_id`` is set when an existing take is edited; new takes get an id
    when they are committed.
    """

    project_id: str
    take_id: str | None = None


class TakeSaveRequest(TakeFields):
    """HTTP body for saving a take; the project comes from the path."""

    take_id: str | None = None


# Fields a patch may not touch
IDENTITY_FIELDS = frozenset({"id", "project_id", "created_at", "updated_at"})


class TakePatch(BaseModel):
    """Partial update merged into an existing take. ``data`` merges key-wise."""

    model_config = ConfigDict(extra="forbid")

    scene: str | None = Field(default=None, min_length=1, max_length=64)
    take_number: int | None = Field(default=None, ge=1)
    camera_id: int | None = Field(default=None, ge=0)
    file_number: int | None = Field(default=None, ge=1)
    file_number_to: int | None = Field(default=None, ge=1)
    sound_file_number: int | None = Field(default=None, ge=1)
    sound_file_number_to: int | None = Field(default=None, ge=1)
    classification: Classification | None = None
    waste_options: set[WasteReason] | None = None
    insert_sound_speed: float | None = None
    shot_details: str | None = None
    template: LogSheetTemplate | None = None
    data: dict[str, Any] | None = None
    disabled_fields: set[str] | None = None
    camera_rec_state: CameraRecState | None = None

    @field_validator(
        "take_number", "file_number", "file_number_to", "sound_file_number", "sound_file_number_to", mode="before"
    )
    @classmethod
    def parse_numbers(cls, v: Any) -> Any:
        return _coerce_number(v)


# =============================================================================
# Range edits
# =============================================================================


class RangeSpec(BaseModel):
    """Apply one field's value to every take numbered start..end inclusive.

    Bounds are checked by ``expand_range`` so malformed ranges surface as
    InvalidRangeError rather than schema errors.
    """

    field: str = Field(..., min_length=1)
    start: int
    end: int
    scene: str | None = None
    camera_id: int | None = Field(default=None, ge=0)


class RangePatch(BaseModel):
    take_id: str
    take_number: int
    patch: TakePatch


# =============================================================================
# Conflicts
# =============================================================================


class ConflictKind(str, Enum):
    TAKE_NUMBER = "take_number"  # content collision
    FILE_NUMBER = "file_number"  # I/O naming collision
    SOUND_FILE = "sound_file"  # sound roll naming collision, project-wide


class Conflict(BaseModel):
    take_id: str
    kind: ConflictKind
    scene: str
    take_number: int
    camera_id: int
    file_number: int | None = None
    file_number_to: int | None = None
    sound_file_number: int | None = None
    sound_file_number_to: int | None = None


class ConflictSet(BaseModel):
    """Existing takes that collide with a candidate. Never persisted."""

    conflicts: list[Conflict] = Field(default_factory=list)
    suggested_take_number: int | None = None

    @property
    def is_empty(self) -> bool:
        return not self.conflicts

    @property
    def take_ids(self) -> list[str]:
        """Distinct conflicting take ids in detection order."""
        seen: dict[str, None] = {}
        for conflict in self.conflicts:
            seen.setdefault(conflict.take_id, None)
        return list(seen)

    def of_kind(self, kind: ConflictKind) -> list[Conflict]:
        return [c for c in self.conflicts if c.kind == kind]

    def signature(self) -> set[tuple[str, str]]:
        return {(c.take_id, c.kind.value) for c in self.conflicts}
