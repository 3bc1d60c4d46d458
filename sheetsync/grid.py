"""Merge-aware reconstruction of a logical grid from raw cell batches.

The values API returns ragged rows and reports merged ranges separately, with
only the top-left cell of a merge carrying a value.  ``reconstruct_grid``
pads the rows into a dense grid, copies every merge's top-left value across
its rectangle and drops rows that end up entirely blank while keeping the
original row indices of the survivors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from sheetsync.columns import index_to_letters


@dataclass(frozen=True)
class MergeRegion:
    """Rectangle of merged cells, zero-based with inclusive ends."""

    start_row: int
    end_row: int
    start_col: int
    end_col: int

    def shifted(self, rows: int) -> "MergeRegion":
        """Return the region moved by ``rows`` rows."""

        return MergeRegion(self.start_row + rows, self.end_row + rows, self.start_col, self.end_col)

    def contains(self, row: int, col: int) -> bool:
        return self.start_row <= row <= self.end_row and self.start_col <= col <= self.end_col


@dataclass(frozen=True)
class Cell:
    row: int
    col: int
    value: Any = None
    merge: Optional[MergeRegion] = None


@dataclass(frozen=True)
class LogicalRow:
    """A non-blank row of the grid keyed by column letters.

    ``row_index`` is the zero-based position of the row in the raw batch it
    was built from.  It is never renumbered when blank rows are dropped.
    """

    row_index: int
    columns: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", MappingProxyType(dict(self.columns)))

    @property
    def row_number(self) -> int:
        return self.row_index + 1


def is_blank(value: Any) -> bool:
    """Return ``True`` for ``None`` and empty strings."""

    return value is None or (isinstance(value, str) and value == "")


def build_cells(
    raw_rows: Sequence[Sequence[Any]],
    merges: Iterable[MergeRegion] = (),
) -> List[List[Cell]]:
    """Return the dense cell grid with merge values propagated."""

    height = len(raw_rows)
    width = max((len(row) for row in raw_rows), default=0)
    values: List[List[Any]] = [
        [row[col] if col < len(row) else None for col in range(width)] for row in raw_rows
    ]
    owners: List[List[Optional[MergeRegion]]] = [[None] * width for _ in range(height)]

    for merge in merges:
        if not (0 <= merge.start_row < height and 0 <= merge.start_col < width):
            continue
        top_left = values[merge.start_row][merge.start_col]
        for row in range(merge.start_row, min(merge.end_row, height - 1) + 1):
            for col in range(merge.start_col, min(merge.end_col, width - 1) + 1):
                owners[row][col] = merge
                if row != merge.start_row or col != merge.start_col:
                    values[row][col] = top_left

    return [
        [Cell(row, col, values[row][col], owners[row][col]) for col in range(width)]
        for row in range(height)
    ]


def reconstruct_grid(
    raw_rows: Sequence[Sequence[Any]],
    merges: Iterable[MergeRegion] = (),
) -> List[LogicalRow]:
    """Return the non-blank rows of the merged grid."""

    rows: List[LogicalRow] = []
    for cells in build_cells(raw_rows, merges):
        if all(is_blank(cell.value) for cell in cells):
            continue
        rows.append(
            LogicalRow(
                row_index=cells[0].row,
                columns={index_to_letters(cell.col): cell.value for cell in cells},
            )
        )
    return rows


__all__ = [
    "Cell",
    "LogicalRow",
    "MergeRegion",
    "build_cells",
    "is_blank",
    "reconstruct_grid",
]
