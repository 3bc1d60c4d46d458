"""Row range planning for reads that are capped per API call."""
from __future__ import annotations

from typing import List, Tuple

from sheetsync.errors import MalformedRangeError

MAX_ROWS_PER_READ = 100


def plan_batches(total_rows: int, start_row: int, cap: int = MAX_ROWS_PER_READ) -> List[Tuple[int, int]]:
    """Return contiguous ``(start, end)`` row pairs covering ``[start_row, total_rows - 1]``.

    Each pair spans at most ``cap`` rows and the last one is clamped to
    ``total_rows - 1``.  Nothing is planned when ``total_rows <= start_row``.
    """

    if cap < 1:
        raise ValueError("cap must be positive")
    if start_row < 1:
        raise ValueError("start_row must be >= 1")
    last_row = total_rows - 1
    batches: List[Tuple[int, int]] = []
    if last_row < start_row:
        return batches
    count = (last_row - start_row + 1 + cap - 1) // cap
    for index in range(count):
        begin = start_row + index * cap
        end = min(start_row + (index + 1) * cap - 1, last_row)
        batches.append((begin, end))
    return batches


def validate_range(start_row: int, end_row: int, column_count: int) -> None:
    """Raise :class:`MalformedRangeError` for reversed or zero-width ranges."""

    if start_row < 1:
        raise MalformedRangeError(f"Start row must be >= 1, got {start_row}")
    if end_row < start_row:
        raise MalformedRangeError(f"End row {end_row} precedes start row {start_row}")
    if column_count < 1:
        raise MalformedRangeError("Range width must be positive")


__all__ = [
    "MAX_ROWS_PER_READ",
    "plan_batches",
    "validate_range",
]
