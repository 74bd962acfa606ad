"""Duplicate resolution workflow.

A save attempt moves through ``idle -> detecting -> awaiting_decision ->
resolving -> committed | cancelled``; a direct commit the store rejects ends
in ``failed``. This module holds the pure parts: the allowed transitions,
which strategies a conflict set offers, and the plan (records to upsert and
delete) each strategy produces. Applying a plan is a single registry commit
performed by the engine.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from takelog.exceptions import InternalError, InvalidStrategyError, RenumberExhaustedError
from takelog.schemas.resolution import ResolutionStrategy, WorkflowState
from takelog.schemas.take import ConflictKind, ConflictSet, LogSheet
from takelog.services.duplicate_detector import records_file, same_slate, same_slot
from takelog.services.numbering import range_delta

logger = logging.getLogger(__name__)

TRANSITIONS: dict[WorkflowState, frozenset[WorkflowState]] = {
    WorkflowState.IDLE: frozenset({WorkflowState.DETECTING}),
    WorkflowState.DETECTING: frozenset(
        {WorkflowState.AWAITING_DECISION, WorkflowState.COMMITTED, WorkflowState.FAILED}
    ),
    WorkflowState.AWAITING_DECISION: frozenset({WorkflowState.RESOLVING, WorkflowState.CANCELLED}),
    # Back to awaiting_decision when the plan cannot be applied
    WorkflowState.RESOLVING: frozenset({WorkflowState.COMMITTED, WorkflowState.AWAITING_DECISION}),
    WorkflowState.COMMITTED: frozenset(),
    WorkflowState.CANCELLED: frozenset(),
    WorkflowState.FAILED: frozenset(),
}


def check_transition(current: WorkflowState, new: WorkflowState) -> None:
    if new not in TRANSITIONS[current]:
        raise InternalError(f"Invalid workflow transition {current.value} -> {new.value}")


@dataclass
class ResolutionPlan:
    """Registry writes for one strategy; ``take`` is the candidate as stored."""

    take: LogSheet
    upserts: list[LogSheet] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)

    @property
    def modified_ids(self) -> list[str]:
        return [t.id for t in self.upserts if t.id != self.take.id]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _swap_partner(conflicts: ConflictSet, previous: LogSheet | None, candidate: LogSheet) -> str | None:
    """Id of the take that can trade numbers with an edited take, if any."""
    if previous is None or len(conflicts.take_ids) != 1:
        return None
    if any(c.kind != ConflictKind.TAKE_NUMBER for c in conflicts.conflicts):
        return None
    if not same_slot(previous, candidate.project_id, candidate.scene, candidate.camera_id):
        return None
    if previous.take_number == candidate.take_number:
        return None
    return conflicts.take_ids[0]


def available_strategies(
    conflicts: ConflictSet,
    candidate: LogSheet,
    previous: LogSheet | None = None,
    *,
    allow_renumber: bool = True,
) -> list[ResolutionStrategy]:
    """Strategies offered for a conflict set.

    Args:
        conflicts: Non-empty conflict set for the candidate
        candidate: The candidate record
        previous: Stored version of the candidate when it is an edit
        allow_renumber: False once renumbering ran out of headroom
    """
    strategies = []
    if allow_renumber:
        strategies.append(ResolutionStrategy.RENUMBER_FORWARD)
    if _swap_partner(conflicts, previous, candidate) is not None:
        strategies.append(ResolutionStrategy.SWAP)
    if len(conflicts.take_ids) == 1:
        strategies.append(ResolutionStrategy.OVERWRITE)
    strategies.append(ResolutionStrategy.CANCEL)
    return strategies


def _push_ranges(
    groups: list[tuple[int, int, list[LogSheet]]],
    previous_hi: int,
    field_name: str,
    maximum: int,
    moved: dict[str, LogSheet],
) -> None:
    """Push each (lower, upper, takes) group past the one before, keeping widths."""
    for lo, hi, members in groups:
        new_lo = max(lo, previous_hi + 1)
        new_hi = new_lo + range_delta(lo, hi) - 1
        if new_hi > maximum:
            raise RenumberExhaustedError(field_name, maximum)
        if new_lo != lo:
            for take in members:
                current = moved.get(take.id, take)
                moved[take.id] = current.model_copy(
                    update={
                        field_name: new_lo,
                        f"{field_name}_to": new_hi if getattr(take, f"{field_name}_to") is not None else None,
                    }
                )
        previous_hi = new_hi


def plan_renumber_forward(
    takes: list[LogSheet],
    candidate: LogSheet,
    *,
    max_take_number: int,
    max_file_number: int,
) -> ResolutionPlan:
    """Shift later takes up so the candidate fits.

    Take numbers: every other take in the candidate's scene/camera numbered at
    or above the candidate moves to ``max(own, previous + 1)``, so gaps absorb
    the shift and order is kept. File numbers: every other take on the
    candidate's camera whose range starts at or after the candidate's (or
    overlaps it) is pushed past the previous range, keeping its width.
    Sound files shift the same way across the whole project, one slate at a
    time. Each chain only runs when the candidate records that file, so a
    sound-only entry leaves camera files alone and the other way round.

    Raises:
        RenumberExhaustedError: a shifted number would exceed its maximum
    """
    others = [t for t in takes if t.id != candidate.id and t.project_id == candidate.project_id]
    moved: dict[str, LogSheet] = {}

    chain = sorted(
        (
            t
            for t in others
            if same_slot(t, candidate.project_id, candidate.scene, candidate.camera_id)
            and t.take_number >= candidate.take_number
        ),
        key=lambda t: t.take_number,
    )
    previous = candidate.take_number
    for take in chain:
        number = max(take.take_number, previous + 1)
        if number > max_take_number:
            raise RenumberExhaustedError("take_number", max_take_number)
        if number != take.take_number:
            moved[take.id] = take.model_copy(update={"take_number": number})
        previous = number

    if records_file(candidate):
        cand_lo, cand_hi = candidate.file_range
        file_chain = sorted(
            (
                t
                for t in others
                if t.camera_id == candidate.camera_id
                and t.file_range is not None
                and t.file_range[1] >= cand_lo
            ),
            key=lambda t: t.file_range,
        )
        groups = [(*t.file_range, [t]) for t in file_chain]
        _push_ranges(groups, cand_hi, "file_number", max_file_number, moved)

    if candidate.sound_file_range is not None:
        cand_lo, cand_hi = candidate.sound_file_range
        # Cameras of one slate share a sound file and move together
        slates: dict[tuple, list[LogSheet]] = {}
        for t in others:
            if t.sound_file_range is None or t.sound_file_range[1] < cand_lo or same_slate(t, candidate):
                continue
            slates.setdefault((*t.sound_file_range, t.scene, t.take_number), []).append(t)
        groups = [(key[0], key[1], members) for key, members in sorted(slates.items(), key=lambda kv: kv[0][:2])]
        _push_ranges(groups, cand_hi, "sound_file_number", max_file_number, moved)

    now = _now()
    shifted = [t.model_copy(update={"updated_at": now}) for t in moved.values()]
    if shifted:
        logger.debug(f"Renumber forward moves {len(shifted)} take(s) for {candidate.scene}/{candidate.take_number}")
    return ResolutionPlan(take=candidate, upserts=[candidate, *shifted])


def plan_overwrite(takes: list[LogSheet], candidate: LogSheet, conflicts: ConflictSet) -> ResolutionPlan:
    """Replace the single conflicting record's content with the candidate's.

    The overwritten record keeps its id and created_at. When the candidate is
    an edit of another stored take, that take is removed.
    """
    if len(conflicts.take_ids) != 1:
        raise InvalidStrategyError(
            ResolutionStrategy.OVERWRITE.value,
            ["conflicts reference more than one take"],
        )
    target_id = conflicts.take_ids[0]
    target = next((t for t in takes if t.id == target_id), None)
    if target is None:
        raise InternalError(f"Conflicting take {target_id} is no longer stored")

    stored_ids = {t.id for t in takes}
    take = candidate.model_copy(
        update={"id": target.id, "created_at": target.created_at, "updated_at": _now()}
    )
    deletes = [candidate.id] if candidate.id in stored_ids and candidate.id != target.id else []
    return ResolutionPlan(take=take, upserts=[take], deletes=deletes)


def plan_swap(
    takes: list[LogSheet],
    candidate: LogSheet,
    conflicts: ConflictSet,
    previous: LogSheet | None,
) -> ResolutionPlan:
    """Give the conflicting take the edited take's former number."""
    partner_id = _swap_partner(conflicts, previous, candidate)
    if partner_id is None:
        raise InvalidStrategyError(ResolutionStrategy.SWAP.value)
    partner = next((t for t in takes if t.id == partner_id), None)
    if partner is None:
        raise InternalError(f"Conflicting take {partner_id} is no longer stored")

    swapped = partner.model_copy(update={"take_number": previous.take_number, "updated_at": _now()})
    return ResolutionPlan(take=candidate, upserts=[candidate, swapped])


def plan(
    strategy: ResolutionStrategy,
    takes: list[LogSheet],
    candidate: LogSheet,
    conflicts: ConflictSet,
    *,
    previous: LogSheet | None = None,
    max_take_number: int = 9999,
    max_file_number: int = 9999,
) -> ResolutionPlan:
    """Build the registry writes for a chosen strategy (not for cancel)."""
    if strategy == ResolutionStrategy.RENUMBER_FORWARD:
        return plan_renumber_forward(
            takes,
            candidate,
            max_take_number=max_take_number,
            max_file_number=max_file_number,
        )
    if strategy == ResolutionStrategy.OVERWRITE:
        return plan_overwrite(takes, candidate, conflicts)
    if strategy == ResolutionStrategy.SWAP:
        return plan_swap(takes, candidate, conflicts, previous)
    raise InvalidStrategyError(strategy.value)
