"""Numbering policy for take and file numbers.

Pure functions only: validity, ordering, range expansion and the
"next free number" search used when renumbering. Slate entries typed on set
are often prefixed or zero padded ("A012", "0007"), so ``parse_number``
accepts anything that contains digits.
"""

import math
import re
from collections.abc import Iterable
from typing import Any

from takelog.exceptions import InvalidNumberError, InvalidRangeError

_NON_DIGITS = re.compile(r"[^0-9]")


def is_valid_number(n: Any) -> bool:
    """Return True for positive, finite whole numbers."""
    if isinstance(n, bool):
        return False
    if isinstance(n, int):
        return n > 0
    if isinstance(n, float):
        return math.isfinite(n) and n.is_integer() and n > 0
    return False


def compare(a: int, b: int) -> int:
    """Numeric ascending comparison: -1, 0 or 1."""
    return (a > b) - (a < b)


def expand_range(start: Any, end: Any, *, limit: int | None = None) -> list[int]:
    """Expand an inclusive range into ascending integers.

    Args:
        start: First number of the range
        end: Last number of the range
        limit: Highest number the range may reach, if bounded

    Raises:
        InvalidRangeError: if either bound is not a valid number, start > end
            or end exceeds limit
    """
    if not is_valid_number(start) or not is_valid_number(end):
        raise InvalidRangeError(start=start, end=end)
    lo, hi = int(start), int(end)
    if lo > hi:
        raise InvalidRangeError(f"Range start {lo} is after range end {hi}", start=lo, end=hi)
    if limit is not None and hi > limit:
        raise InvalidRangeError(f"Range end {hi} exceeds the maximum of {limit}", start=lo, end=hi)
    return list(range(lo, hi + 1))


def next_available(existing: Iterable[int], from_number: int) -> int:
    """Smallest integer >= from_number that is not in existing."""
    if not is_valid_number(from_number):
        raise InvalidNumberError(from_number)
    taken = set(existing)
    candidate = int(from_number)
    while candidate in taken:
        candidate += 1
    return candidate


def parse_number(value: Any, *, field: str | None = None) -> int:
    """Parse a take/file entry into a positive int.

    Strings keep only their digits, so "A012" and "0012" both read as 12.
    """
    if isinstance(value, str):
        digits = _NON_DIGITS.sub("", value)
        if not digits:
            raise InvalidNumberError(value, field=field)
        value = int(digits)
    if not is_valid_number(value):
        raise InvalidNumberError(value, field=field)
    return int(value)


def format_file_number(n: int, width: int = 4) -> str:
    """Zero-pad a file number for display and export (7 -> "0007")."""
    return str(int(n)).zfill(width)


def format_file_range(lower: int, upper: int | None, width: int = 4) -> str:
    """Render a file entry as "0004" or "0004-0008"."""
    if upper is None or upper == lower:
        return format_file_number(lower, width)
    return f"{format_file_number(lower, width)}-{format_file_number(upper, width)}"


def range_delta(lower: int, upper: int | None = None) -> int:
    """Number of files covered by an inclusive range (single value -> 1)."""
    if upper is None:
        return 1
    return abs(upper - lower) + 1


def ranges_overlap(a_lo: int, a_hi: int, b_lo: int, b_hi: int) -> bool:
    return not (a_hi < b_lo or a_lo > b_hi)
