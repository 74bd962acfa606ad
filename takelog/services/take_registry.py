"""Take registry: the authoritative set of log sheets per project.

The registry keeps an in-memory view per project in front of the store. Every
mutation builds the complete new list, checks the uniqueness invariants,
writes it through the store and only then replaces the in-memory view, so a
failed write leaves readers on the previous state.
"""

import logging
import re
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from takelog.exceptions import DuplicateError, TakeNotFoundError, UnknownCameraError, ValidationError
from takelog.schemas.envelope import ErrorLocation
from takelog.schemas.project import Project
from takelog.schemas.take import (
    IDENTITY_FIELDS,
    Classification,
    LogSheet,
    TakeFields,
    TakePatch,
)
from takelog.services import camera_state
from takelog.services.duplicate_detector import describe, detect, same_slot
from takelog.services.numbering import range_delta
from takelog.services.project_service import ProjectService
from takelog.services.take_store import TakeStore

logger = logging.getLogger(__name__)

_SCENE_CHUNKS = re.compile(r"(\d+)")

CONTENT_FIELDS = frozenset(TakeFields.model_fields)


def scene_sort_key(scene: str) -> tuple:
    """Natural ordering for scene labels: "2" < "10" < "10A" < "10B"."""
    parts = []
    for chunk in _SCENE_CHUNKS.split(scene):
        if not chunk:
            continue
        parts.append((0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk.lower()))
    return tuple(parts)


def take_sort_key(take: LogSheet) -> tuple:
    return scene_sort_key(take.scene), take.take_number, take.camera_id


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _schema_error(e: PydanticValidationError) -> ValidationError:
    first = e.errors()[0] if e.errors() else {}
    loc = ".".join(str(x) for x in first.get("loc", ()))
    msg = first.get("msg", "Invalid take")
    return ValidationError(
        f"{loc}: {msg}" if loc else msg,
        location=ErrorLocation(field=loc or None),
    )


def merge_patch(take: LogSheet, patch: TakePatch | dict[str, Any]) -> dict[str, Any]:
    """Merge a partial update into a take's fields.

    ``data`` merges key-wise. Changing the classification drops payload
    fields that only belong to the previous classification, and moving the
    first camera or sound file number keeps the width of a recorded range.
    """
    if isinstance(patch, dict):
        patch = TakePatch.model_validate(patch)
    changes = patch.model_dump(exclude_unset=True)

    merged = take.model_dump()
    for name in IDENTITY_FIELDS:
        changes.pop(name, None)

    if "data" in changes:
        merged["data"] = {**take.data, **(changes.pop("data") or {})}

    if "classification" in changes:
        classification = changes["classification"]
        if classification != Classification.WASTE and "waste_options" not in changes:
            merged["waste_options"] = None
        if classification != Classification.INSERT and "insert_sound_speed" not in changes:
            merged["insert_sound_speed"] = None

    for lower in ("file_number", "sound_file_number"):
        upper = f"{lower}_to"
        if lower not in changes or upper in changes:
            continue
        if changes[lower] is None:
            merged[upper] = None
        elif getattr(take, upper) is not None:
            merged[upper] = changes[lower] + range_delta(getattr(take, lower), getattr(take, upper)) - 1

    merged.update(changes)
    return merged


class TakeRegistry:
    """Project-scoped CRUD over log sheets with uniqueness enforcement."""

    def __init__(self, store: TakeStore, projects: ProjectService, *, file_number_width: int = 4) -> None:
        self._store = store
        self._projects = projects
        self._width = file_number_width
        self._takes: dict[str, list[LogSheet]] = {}

    async def _load(self, project_id: str) -> list[LogSheet]:
        takes = self._takes.get(project_id)
        if takes is None:
            await self._projects.get(project_id)
            takes = await self._store.load_project_takes(project_id)
            self._takes[project_id] = takes
            logger.debug(f"Loaded {len(takes)} take(s) for project {project_id}")
        return takes

    # -- reads ----------------------------------------------------------------

    async def list_by_project(self, project_id: str) -> list[LogSheet]:
        return sorted(await self._load(project_id), key=take_sort_key)

    async def get(self, project_id: str, take_id: str) -> LogSheet:
        for take in await self._load(project_id):
            if take.id == take_id:
                return take
        raise TakeNotFoundError(take_id, project_id)

    async def find(self, project_id: str, scene: str, take_number: int, camera_id: int = 0) -> LogSheet | None:
        for take in await self._load(project_id):
            if take.key == (scene, take_number, camera_id):
                return take
        return None

    async def has_takes(self, project_id: str) -> bool:
        return bool(await self._load(project_id))

    # -- record building ------------------------------------------------------

    def normalize(self, project: Project, fields: dict[str, Any]) -> dict[str, Any]:
        """Fit derived fields to the project's camera configuration."""
        count = project.settings.camera_configuration
        camera_id = fields.get("camera_id") or 0
        if camera_id >= count:
            raise UnknownCameraError(camera_id, count)

        if not project.settings.is_multi_camera:
            fields["camera_rec_state"] = None
            return fields

        state = fields.get("camera_rec_state")
        if state is None:
            fields["camera_rec_state"] = camera_state.initialize(count)
        else:
            if not isinstance(state, dict):
                state = camera_state.serialize(state)
            fields["camera_rec_state"] = camera_state.deserialize(state, count)
        return fields

    def build(
        self,
        project: Project,
        fields: TakeFields | dict[str, Any],
        *,
        take_id: str | None = None,
        created_at: datetime | None = None,
    ) -> LogSheet:
        """Validate content fields into a LogSheet of ``project``."""
        if isinstance(fields, TakeFields):
            fields = fields.model_dump(include=CONTENT_FIELDS)
        else:
            fields = {k: v for k, v in fields.items() if k in CONTENT_FIELDS}
        fields = self.normalize(project, dict(fields))

        values: dict[str, Any] = {**fields, "project_id": project.id, "updated_at": _now()}
        if take_id is not None:
            values["id"] = take_id
        if created_at is not None:
            values["created_at"] = created_at
        try:
            return LogSheet.model_validate(values)
        except PydanticValidationError as e:
            raise _schema_error(e) from e

    # -- writes ---------------------------------------------------------------

    def check_invariants(self, project_id: str, takes: list[LogSheet], changed: Iterable[LogSheet]) -> None:
        """Raise DuplicateError if any changed take collides with the rest."""
        for take in changed:
            conflicts = detect(takes, take, project_id=project_id, candidate_id=take.id)
            if not conflicts.is_empty:
                raise DuplicateError(
                    f"Scene {take.scene} take {take.take_number}: {describe(conflicts, self._width)}",
                    conflicts=conflicts,
                )

    async def commit(
        self,
        project_id: str,
        upserts: Iterable[LogSheet] = (),
        deletes: Iterable[str] = (),
    ) -> list[LogSheet]:
        """Apply a batch of writes atomically.

        Returns:
            The upserted takes as stored
        """
        current = await self._load(project_id)
        upserts = list(upserts)
        delete_ids = set(deletes)
        upsert_ids = {take.id for take in upserts}
        for take in upserts:
            if take.project_id != project_id:
                raise ValidationError(
                    f"Take {take.id} belongs to project {take.project_id}",
                    location=ErrorLocation(take_id=take.id, project_id=project_id),
                )

        new_takes = [t for t in current if t.id not in delete_ids and t.id not in upsert_ids]
        new_takes.extend(t for t in upserts if t.id not in delete_ids)
        self.check_invariants(project_id, new_takes, (t for t in upserts if t.id not in delete_ids))

        # Takes and the project timestamp land in one store write
        now = _now()
        await self._store.save_project_takes(project_id, new_takes, updated_at=now)
        self._takes[project_id] = new_takes
        self._projects.mark_updated(project_id, now)

        logger.info(
            f"Committed project {project_id}: {len(upserts)} upsert(s), "
            f"{len(delete_ids & {t.id for t in current})} delete(s)"
        )
        return [t for t in upserts if t.id not in delete_ids]

    async def create(self, project_id: str, candidate: TakeFields) -> LogSheet:
        """Store a new take; raises DuplicateError on any collision."""
        project = await self._projects.get(project_id)
        take = self.build(project, candidate)
        conflicts = detect(await self._load(project_id), take, project_id=project_id, candidate_id=take.id)
        if not conflicts.is_empty:
            raise DuplicateError(describe(conflicts, self._width), conflicts=conflicts)
        (stored,) = await self.commit(project_id, [take])
        return stored

    async def update(self, project_id: str, take_id: str, patch: TakePatch | dict[str, Any]) -> LogSheet:
        """Merge a patch into an existing take; raises DuplicateError on collision."""
        project = await self._projects.get(project_id)
        existing = await self.get(project_id, take_id)
        try:
            merged = merge_patch(existing, patch)
        except PydanticValidationError as e:
            raise _schema_error(e) from e
        take = self.build(project, merged, take_id=existing.id, created_at=existing.created_at)
        (stored,) = await self.commit(project_id, [take])
        return stored

    async def delete(self, project_id: str, take_id: str, *, close_gap: bool = False) -> list[LogSheet]:
        """Remove a take. Unknown ids are a no-op.

        With ``close_gap`` later takes of the same scene and camera move down
        by one. Returns the takes that were renumbered.
        """
        takes = await self._load(project_id)
        target = next((t for t in takes if t.id == take_id), None)
        if target is None:
            return []

        shifted: list[LogSheet] = []
        if close_gap:
            now = _now()
            shifted = [
                t.model_copy(update={"take_number": t.take_number - 1, "updated_at": now})
                for t in takes
                if t.id != take_id
                and same_slot(t, project_id, target.scene, target.camera_id)
                and t.take_number > target.take_number
            ]
        await self.commit(project_id, shifted, [take_id])
        logger.info(f"Deleted take {take_id} from project {project_id} ({len(shifted)} renumbered)")
        return shifted

    async def delete_project(self, project_id: str) -> None:
        """Remove every take of a project."""
        await self._store.save_project_takes(project_id, [])
        self._takes.pop(project_id, None)
