"""Range edits: apply one field's value to every take numbered start..end.

Ranges are transient. ``build_range_patches`` turns a range into one patch
per matching take; the engine merges them, re-checks each record for
collisions and commits them together.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from takelog.exceptions import ValidationError
from takelog.schemas.envelope import ErrorLocation
from takelog.schemas.take import LogSheet, RangePatch, RangeSpec, TakeFields, TakePatch
from takelog.services.numbering import expand_range

logger = logging.getLogger(__name__)

# Fields that identify a take or are managed elsewhere
_PROTECTED_FIELDS = frozenset({"take_number", "camera_id", "camera_rec_state", "disabled_fields", "data"})

ATTRIBUTE_FIELDS = frozenset(TakeFields.model_fields) - _PROTECTED_FIELDS


def in_scope(takes: Iterable[LogSheet], range_spec: RangeSpec) -> list[LogSheet]:
    """Takes matching the range's optional scene/camera filters."""
    return [
        t
        for t in takes
        if (range_spec.scene is None or t.scene == range_spec.scene)
        and (range_spec.camera_id is None or t.camera_id == range_spec.camera_id)
    ]


def patch_for(field: str, value: Any) -> TakePatch:
    """Patch setting one attribute, or one ``data`` key for template fields."""
    if field in _PROTECTED_FIELDS:
        raise ValidationError(
            f"Field cannot be set by a range edit: {field}",
            location=ErrorLocation(field=field),
        )
    payload = {field: value} if field in ATTRIBUTE_FIELDS else {"data": {field: value}}
    try:
        return TakePatch.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        raise ValidationError(
            f"Invalid value for {field}: {first.get('msg', 'invalid')}",
            location=ErrorLocation(field=field),
        ) from e


def build_range_patches(
    range_spec: RangeSpec,
    value: Any,
    takes_in_scope: Iterable[LogSheet],
    disabled_fields: Mapping[str, set[str]] | None = None,
    *,
    max_take_number: int = 9999,
) -> list[RangePatch]:
    """One patch per take numbered within the range.

    Numbers without a take are skipped. A take whose disabled fields (its own
    plus the per-take overrides) contain the range's field is left out.

    Raises:
        InvalidRangeError: malformed bounds, or an end above max_take_number
        ValidationError: field not editable or value invalid for it
    """
    numbers = expand_range(range_spec.start, range_spec.end, limit=max_take_number)
    patch = patch_for(range_spec.field, value)
    overrides = disabled_fields or {}

    by_number: dict[int, list[LogSheet]] = {}
    for take in takes_in_scope:
        by_number.setdefault(take.take_number, []).append(take)

    patches: list[RangePatch] = []
    for number in numbers:
        for take in by_number.get(number, []):
            disabled = take.disabled_fields | set(overrides.get(take.id, ()))
            if range_spec.field in disabled:
                logger.debug(f"Range edit skips {range_spec.field} on take {take.id} (disabled)")
                continue
            patches.append(RangePatch(take_id=take.id, take_number=number, patch=patch))
    return patches
