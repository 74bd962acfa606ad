"""Duplicate detection for candidate take edits.

Three kinds of collision are reported, tagged so the resolution workflow can
react differently:

- take_number: same scene and take number on the same camera (content)
- file_number: overlapping file numbers/ranges on the same camera (naming)
- sound_file: overlapping sound file numbers anywhere in the project; the
  cameras of one slate share their sound file, so those never collide

A record is never in conflict with itself, so editing a take in place only
collides with other takes.
"""

from collections.abc import Iterable

from takelog.schemas.take import Conflict, ConflictKind, ConflictSet, LogSheet, TakeFields
from takelog.services import camera_state
from takelog.services.numbering import format_file_range, next_available, ranges_overlap


def same_slot(take: LogSheet, project_id: str, scene: str, camera_id: int) -> bool:
    return take.project_id == project_id and take.scene == scene and take.camera_id == camera_id


def _conflict(take: LogSheet, kind: ConflictKind) -> Conflict:
    return Conflict(
        take_id=take.id,
        kind=kind,
        scene=take.scene,
        take_number=take.take_number,
        camera_id=take.camera_id,
        file_number=take.file_number,
        file_number_to=take.file_number_to,
        sound_file_number=take.sound_file_number,
        sound_file_number_to=take.sound_file_number_to,
    )


def records_file(candidate: TakeFields) -> bool:
    """Whether the candidate's own camera rolled, i.e. its file number is real."""
    if candidate.file_number is None:
        return False
    state = candidate.camera_rec_state
    return state is None or candidate.camera_id in camera_state.rolling_cameras(state)


def same_slate(take: TakeFields, other: TakeFields) -> bool:
    """Other cameras of the same scene and take; they share the sound file."""
    return (
        take.scene == other.scene
        and take.take_number == other.take_number
        and take.camera_id != other.camera_id
    )


def detect(
    existing_takes: Iterable[LogSheet],
    candidate: TakeFields,
    *,
    project_id: str,
    candidate_id: str | None = None,
    check_file_numbers: bool = True,
) -> ConflictSet:
    """Scan existing takes for collisions with a candidate.

    Args:
        existing_takes: Takes to check against (any project; filtered here)
        candidate: The candidate content
        project_id: Project the candidate belongs to
        candidate_id: Id of the record being edited, if any
        check_file_numbers: Set False to only check scene/take numbers

    Returns:
        ConflictSet; empty means the candidate can be committed directly
    """
    conflicts: list[Conflict] = []
    slot_numbers: list[int] = []
    candidate_range = candidate.file_range if check_file_numbers and records_file(candidate) else None
    sound_range = candidate.sound_file_range if check_file_numbers else None

    for take in existing_takes:
        if take.project_id != project_id or take.id == candidate_id:
            continue

        if sound_range is not None and take.sound_file_range is not None and not same_slate(take, candidate):
            if ranges_overlap(*sound_range, *take.sound_file_range):
                conflicts.append(_conflict(take, ConflictKind.SOUND_FILE))

        if take.camera_id != candidate.camera_id:
            continue

        if take.scene == candidate.scene:
            slot_numbers.append(take.take_number)
            if take.take_number == candidate.take_number:
                conflicts.append(_conflict(take, ConflictKind.TAKE_NUMBER))

        if candidate_range is not None and take.file_range is not None:
            if ranges_overlap(*candidate_range, *take.file_range):
                conflicts.append(_conflict(take, ConflictKind.FILE_NUMBER))

    suggested = None
    if any(c.kind == ConflictKind.TAKE_NUMBER for c in conflicts):
        suggested = next_available(slot_numbers, candidate.take_number)

    return ConflictSet(conflicts=conflicts, suggested_take_number=suggested)


def describe(conflicts: ConflictSet, width: int = 4) -> str:
    """One-line human readable summary for alerts and logs.

    File numbers are zero padded to ``width`` digits, as written on the slate.
    """
    parts = []
    for c in conflicts.conflicts:
        if c.kind == ConflictKind.TAKE_NUMBER:
            parts.append(f"take {c.take_number} already exists in scene {c.scene} (camera {c.camera_id})")
        elif c.kind == ConflictKind.SOUND_FILE:
            files = format_file_range(c.sound_file_number, c.sound_file_number_to, width)
            parts.append(f"sound file {files} is already used by scene {c.scene} take {c.take_number}")
        else:
            files = format_file_range(c.file_number, c.file_number_to, width)
            parts.append(f"file {files} is already used by scene {c.scene} take {c.take_number}")
    message = "; ".join(parts) or "no conflicts"
    if conflicts.suggested_take_number is not None:
        message += f". Next available take number is {conflicts.suggested_take_number}"
    return message
