"""Take engine: the external interface of the take registry.

All mutations of one project run under that project's ``asyncio.Lock``;
different projects proceed in parallel. Duplicate conflicts are returned as
``ConflictsPending`` with a resolution handle, and ``resolve_conflict``
finishes the save with the chosen strategy.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from takelog.config import Settings
from takelog.exceptions import (
    DuplicateError,
    InvalidStrategyError,
    PersistenceError,
    RenumberExhaustedError,
    ResolutionNotFoundError,
    TakeLogError,
    ValidationError,
)
from takelog.schemas.camera import CameraRecState
from takelog.schemas.envelope import ErrorLocation
from takelog.schemas.project import Project, ProjectCreate, ProjectSettingsUpdate
from takelog.schemas.resolution import (
    Cancelled,
    Committed,
    ConflictsPending,
    Failed,
    ResolutionStrategy,
    SaveResult,
    TakesCommittedData,
    WorkflowEventData,
    WorkflowState,
)
from takelog.schemas.take import ConflictSet, LogSheet, RangeSpec, TakeEditRequest
from takelog.services import camera_state, duplicate_resolution, range_edit
from takelog.services.duplicate_detector import describe, detect
from takelog.services.event_manager import ProjectEvent, ProjectEventManager
from takelog.services.project_service import ProjectService
from takelog.services.resolution_store import PendingResolution, ResolutionStore
from takelog.services.take_registry import TakeRegistry, merge_patch
from takelog.services.take_store import TakeStore

logger = logging.getLogger(__name__)


class TakeEngine:
    """Entry point for saving, resolving, range-editing and deleting takes."""

    def __init__(self, store: TakeStore, settings: Settings) -> None:
        self.settings = settings
        self.projects = ProjectService(store, settings)
        self.registry = TakeRegistry(store, self.projects, file_number_width=settings.file_number_width)
        self.resolutions = ResolutionStore(ttl_seconds=settings.resolution_ttl_seconds)
        self.events = ProjectEventManager()
        self._locks: dict[str, asyncio.Lock] = {}

    @asynccontextmanager
    async def _lock(self, project_id: str) -> AsyncIterator[None]:
        """Hold the project's lock; unknown projects raise before a lock exists."""
        await self.projects.get(project_id)
        lock = self._locks.setdefault(project_id, asyncio.Lock())
        async with lock:
            yield

    def _describe(self, conflicts: ConflictSet) -> str:
        return describe(conflicts, self.settings.file_number_width)

    # -- events ---------------------------------------------------------------

    def _transition(
        self,
        project_id: str,
        handle: str,
        current: WorkflowState,
        new: WorkflowState,
        *,
        take_id: str | None = None,
        conflict_ids: list[str] | None = None,
    ) -> WorkflowState:
        duplicate_resolution.check_transition(current, new)
        data = WorkflowEventData(
            resolution_handle=handle,
            previous_state=current,
            state=new,
            take_id=take_id,
            conflict_ids=conflict_ids or [],
        )
        logger.info(f"Workflow {handle} for project {project_id}: {current.value} -> {new.value}")
        self.events.publish_transition(project_id, data)
        return new

    async def subscribe(self, project_id: str) -> AsyncGenerator[ProjectEvent, None]:
        async for event in self.events.subscribe(project_id):
            yield event

    # -- projects -------------------------------------------------------------

    async def create_project(self, data: ProjectCreate) -> Project:
        return await self.projects.create(data)

    async def get_project(self, project_id: str) -> Project:
        return await self.projects.get(project_id)

    async def update_project_settings(self, project_id: str, update: ProjectSettingsUpdate) -> Project:
        async with self._lock(project_id):
            has_takes = await self.registry.has_takes(project_id)
            return await self.projects.update_settings(project_id, update, has_takes=has_takes)

    async def delete_project(self, project_id: str) -> None:
        async with self._lock(project_id):
            abandoned = self.resolutions.pop_project(project_id)
            if abandoned is not None:
                logger.warning(f"Abandoned pending resolution {abandoned.handle}: project deleted")
            await self.registry.delete_project(project_id)
            await self.projects.delete(project_id)
        self._locks.pop(project_id, None)
        self.events.forget_project(project_id)

    # -- reads ----------------------------------------------------------------

    async def list_takes(self, project_id: str) -> list[LogSheet]:
        return await self.registry.list_by_project(project_id)

    async def get_take(self, project_id: str, take_id: str) -> LogSheet:
        return await self.registry.get(project_id, take_id)

    # -- save & resolve -------------------------------------------------------

    async def save_take(self, request: TakeEditRequest) -> SaveResult:
        """Save a new or edited take.

        Validation errors raise; conflicts come back as ConflictsPending.
        """
        project_id = request.project_id
        async with self._lock(project_id):
            project = await self.projects.get(project_id)
            previous = None
            created_at = None
            if request.take_id is not None:
                previous = await self.registry.get(project_id, request.take_id)
                created_at = previous.created_at
            candidate = self.registry.build(
                project, request, take_id=request.take_id, created_at=created_at
            )

            superseded = self.resolutions.pop_project(project_id)
            if superseded is not None:
                logger.warning(f"Abandoned pending resolution {superseded.handle}: new save on project {project_id}")
                self._transition(
                    project_id, superseded.handle, superseded.state, WorkflowState.CANCELLED
                )

            handle = str(uuid4())
            state = self._transition(project_id, handle, WorkflowState.IDLE, WorkflowState.DETECTING)
            takes = await self.registry.list_by_project(project_id)
            conflicts = detect(takes, candidate, project_id=project_id, candidate_id=candidate.id)

            if conflicts.is_empty:
                try:
                    (take,) = await self.registry.commit(project_id, [candidate])
                except PersistenceError as e:
                    logger.error(f"Save on project {project_id} failed: {e.message}")
                    self._transition(
                        project_id, handle, state, WorkflowState.FAILED, take_id=candidate.id
                    )
                    return Failed(error=e.to_error_info())
                self._transition(project_id, handle, state, WorkflowState.COMMITTED, take_id=take.id)
                self.events.publish_commit(project_id, TakesCommittedData(reason="save", take_id=take.id))
                return Committed(take=take)

            strategies = duplicate_resolution.available_strategies(conflicts, candidate, previous)
            pending = PendingResolution(
                project_id=project_id,
                request=request,
                candidate=candidate,
                conflicts=conflicts,
                strategies=strategies,
                handle=handle,
            )
            self.resolutions.put(pending)
            self._transition(
                project_id,
                handle,
                state,
                WorkflowState.AWAITING_DECISION,
                take_id=candidate.id,
                conflict_ids=conflicts.take_ids,
            )
            logger.info(f"Save on project {project_id} needs a decision: {self._describe(conflicts)}")
            return ConflictsPending(conflicts=conflicts, resolution_handle=handle, strategies=strategies)

    async def resolve_conflict(self, handle: str, strategy: ResolutionStrategy | str) -> SaveResult:
        """Apply a strategy to a pending save."""
        pending = self.resolutions.get(handle)
        if pending is None:
            raise ResolutionNotFoundError(handle)
        try:
            strategy = ResolutionStrategy(strategy)
        except ValueError as e:
            raise InvalidStrategyError(str(strategy), [s.value for s in pending.strategies]) from e
        project_id = pending.project_id

        async with self._lock(project_id):
            # The pending entry may have been superseded while waiting for the lock
            if self.resolutions.get(handle) is not pending:
                raise ResolutionNotFoundError(handle)
            if strategy not in pending.strategies:
                raise InvalidStrategyError(strategy.value, [s.value for s in pending.strategies])

            if strategy == ResolutionStrategy.CANCEL:
                self.resolutions.pop(handle)
                pending.state = self._transition(
                    project_id, handle, pending.state, WorkflowState.CANCELLED
                )
                return Cancelled(resolution_handle=handle)

            takes = await self.registry.list_by_project(project_id)
            previous = next((t for t in takes if t.id == pending.request.take_id), None)
            conflicts = detect(takes, pending.candidate, project_id=project_id, candidate_id=pending.candidate.id)

            if conflicts.is_empty or conflicts.signature() != pending.conflicts.signature():
                return await self._refresh(pending, conflicts, previous)

            pending.state = self._transition(project_id, handle, pending.state, WorkflowState.RESOLVING)
            try:
                plan = duplicate_resolution.plan(
                    strategy,
                    takes,
                    pending.candidate,
                    conflicts,
                    previous=previous,
                    max_take_number=self.settings.max_take_number,
                    max_file_number=self.settings.max_file_number,
                )
                await self.registry.commit(project_id, plan.upserts, plan.deletes)
            except RenumberExhaustedError as e:
                logger.warning(f"Renumber forward exhausted for resolution {handle}: {e.message}")
                pending.strategies = duplicate_resolution.available_strategies(
                    conflicts, pending.candidate, previous, allow_renumber=False
                )
                return self._back_to_decision(pending, e)
            except (DuplicateError, PersistenceError) as e:
                return self._back_to_decision(pending, e)

            self.resolutions.pop(handle)
            pending.state = self._transition(
                project_id, handle, pending.state, WorkflowState.COMMITTED, take_id=plan.take.id
            )
            self.events.publish_commit(
                project_id,
                TakesCommittedData(
                    reason="resolution",
                    take_id=plan.take.id,
                    modified_ids=plan.modified_ids,
                    deleted_ids=plan.deletes,
                ),
            )
            return Committed(take=plan.take, modified_ids=plan.modified_ids, deleted_ids=plan.deletes)

    def _back_to_decision(self, pending: PendingResolution, error: TakeLogError) -> Failed:
        pending.state = self._transition(
            pending.project_id,
            pending.handle,
            pending.state,
            WorkflowState.AWAITING_DECISION,
            take_id=pending.candidate.id,
            conflict_ids=pending.conflicts.take_ids,
        )
        return Failed(
            error=error.to_error_info(),
            resolution_handle=pending.handle,
            strategies=pending.strategies,
        )

    async def _refresh(self, pending: PendingResolution, conflicts, previous: LogSheet | None) -> SaveResult:
        """Registry changed since detection: commit directly or re-ask."""
        project_id = pending.project_id
        if conflicts.is_empty:
            pending.state = self._transition(
                project_id, pending.handle, pending.state, WorkflowState.RESOLVING
            )
            try:
                (take,) = await self.registry.commit(project_id, [pending.candidate])
            except PersistenceError as e:
                return self._back_to_decision(pending, e)
            self.resolutions.pop(pending.handle)
            pending.state = self._transition(
                project_id, pending.handle, pending.state, WorkflowState.COMMITTED, take_id=take.id
            )
            self.events.publish_commit(project_id, TakesCommittedData(reason="resolution", take_id=take.id))
            return Committed(take=take)

        pending.conflicts = conflicts
        pending.strategies = duplicate_resolution.available_strategies(conflicts, pending.candidate, previous)
        logger.info(f"Conflicts changed for resolution {pending.handle}: {self._describe(conflicts)}")
        return ConflictsPending(
            conflicts=conflicts,
            resolution_handle=pending.handle,
            strategies=pending.strategies,
        )

    # -- other mutations ------------------------------------------------------

    async def delete_take(self, project_id: str, take_id: str, *, close_gap: bool = False) -> list[LogSheet]:
        async with self._lock(project_id):
            stored = await self.registry.list_by_project(project_id)
            if not any(t.id == take_id for t in stored):
                return []
            shifted = await self.registry.delete(project_id, take_id, close_gap=close_gap)
        self.events.publish_commit(
            project_id,
            TakesCommittedData(reason="delete", modified_ids=[t.id for t in shifted], deleted_ids=[take_id]),
        )
        return shifted

    async def apply_range_edit(
        self,
        range_spec: RangeSpec,
        value: Any,
        project_id: str,
        disabled_fields: Mapping[str, set[str]] | None = None,
    ) -> list[LogSheet]:
        """Set one field on every take in a number range, all or nothing.

        Raises:
            InvalidRangeError: malformed bounds
            DuplicateError: a patched take would collide; nothing is written
        """
        async with self._lock(project_id):
            project = await self.projects.get(project_id)
            takes = await self.registry.list_by_project(project_id)
            patches = range_edit.build_range_patches(
                range_spec,
                value,
                range_edit.in_scope(takes, range_spec),
                disabled_fields,
                max_take_number=self.settings.max_take_number,
            )
            if not patches:
                return []

            by_id = {t.id: t for t in takes}
            updated = [
                self.registry.build(
                    project,
                    merge_patch(by_id[p.take_id], p.patch),
                    take_id=p.take_id,
                    created_at=by_id[p.take_id].created_at,
                )
                for p in patches
            ]
            committed = await self.registry.commit(project_id, updated)

        logger.info(
            f"Range edit {range_spec.field} {range_spec.start}-{range_spec.end} "
            f"updated {len(committed)} take(s) in project {project_id}"
        )
        if committed:
            self.events.publish_commit(
                project_id, TakesCommittedData(reason="range_edit", modified_ids=[t.id for t in committed])
            )
        return committed

    async def toggle_camera_recording(self, project_id: str, take_id: str, camera_id: int) -> CameraRecState:
        """Flip one camera's rolling flag on a stored take."""
        async with self._lock(project_id):
            project = await self.projects.get(project_id)
            take = await self.registry.get(project_id, take_id)
            if not project.settings.is_multi_camera:
                raise ValidationError(
                    "Recording state is only tracked for multi-camera projects",
                    location=ErrorLocation(field="camera_rec_state", project_id=project_id, take_id=take_id),
                )
            count = project.settings.camera_configuration
            if take.camera_rec_state is None:
                state = camera_state.initialize(count)
            else:
                state = camera_state.deserialize(camera_state.serialize(take.camera_rec_state), count)
            toggled = camera_state.toggle(state, camera_id)
            updated = self.registry.build(
                project,
                {**take.model_dump(), "camera_rec_state": toggled},
                take_id=take.id,
                created_at=take.created_at,
            )
            (stored,) = await self.registry.commit(project_id, [updated])
        self.events.publish_commit(
            project_id, TakesCommittedData(reason="camera_toggle", modified_ids=[stored.id])
        )
        return stored.camera_rec_state

