"""Update-or-append planning that turns records into cell writes.

The planner is pure: it never talks to the remote store.  Given the identity
index of the rows already in the sheet it decides, record by record, whether
to update a matched row or append a new one, resolves every field to its
column and emits the cell writes, the file uploads and the number of rows the
sheet has to grow by before the writes can land.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sheetsync.columns import cell_address, letters_to_index
from sheetsync.config import TableConfig
from sheetsync.hash import calc_identity
from sheetsync.positions import FieldPositionMap
from sheetsync.values import FileData, FileKind, cell_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteOperation:
    """Values for the rectangle ``start:end`` (A1 cell addresses)."""

    start: str
    end: str
    values: List[List[Any]]


@dataclass(frozen=True)
class PendingUpload:
    cell: str
    file: FileData


@dataclass
class UpsertPlan:
    operations: List[WriteOperation] = field(default_factory=list)
    uploads: List[PendingUpload] = field(default_factory=list)
    updated: int = 0
    appended: int = 0
    skipped: int = 0
    required_rows: int = 0
    growth: int = 0


def _row_operations(row_number: int, cells: Sequence[Tuple[str, Any]]) -> List[WriteOperation]:
    """Coalesce the ``(column, value)`` cells of one row into contiguous ranges."""

    ordered = sorted(cells, key=lambda item: letters_to_index(item[0]))
    operations: List[WriteOperation] = []
    run: List[Tuple[str, Any]] = []
    for column, value in ordered:
        if run and letters_to_index(column) != letters_to_index(run[-1][0]) + 1:
            operations.append(_operation(row_number, run))
            run = []
        run.append((column, value))
    if run:
        operations.append(_operation(row_number, run))
    return operations


def _operation(row_number: int, run: Sequence[Tuple[str, Any]]) -> WriteOperation:
    return WriteOperation(
        start=cell_address(run[0][0], row_number),
        end=cell_address(run[-1][0], row_number),
        values=[[cell_value(value) for _, value in run]],
    )


def _emit_record(
    plan: UpsertPlan,
    record: Mapping[str, Any],
    row_number: int,
    positions: FieldPositionMap,
    overwrite_existing: bool,
) -> None:
    cells: Dict[str, Any] = {}
    for field_name, value in record.items():
        column = positions.column_for(field_name)
        if not column:
            continue
        if isinstance(value, FileData):
            plan.uploads.append(PendingUpload(cell=cell_address(column, row_number), file=value))
            continue
        if value is None and not overwrite_existing:
            continue
        cells[column] = value
    plan.operations.extend(_row_operations(row_number, list(cells.items())))


def _finish(plan: UpsertPlan, highest_row: int, sheet_row_count: int) -> UpsertPlan:
    plan.required_rows = highest_row
    plan.growth = max(0, highest_row - sheet_row_count)
    return plan


def next_free_row(identity_index: Mapping[str, int], data_start_row: int) -> int:
    """Return the first sheet row after every indexed row."""

    if not identity_index:
        return data_start_row
    return max(identity_index.values()) + 2


def plan_upsert(
    config: TableConfig,
    positions: FieldPositionMap,
    identity_index: Mapping[str, int],
    records: Sequence[Mapping[str, Any]],
    sheet_row_count: int,
) -> UpsertPlan:
    """Plan the writes for ``records``.

    ``identity_index`` maps identity hashes to zero-based row indices of the
    data rows already present.  A matched record updates row ``index + 1``;
    an unmatched one is appended after the last indexed row unless
    ``config.skip_unmatched`` is set.

    Caveats:

    * When two rows share a hash the index holds only the later one, so the
      earlier row is never updated.
    * Rows without an identity (every unique-key cell blank) are not in the
      index and do not move the append position.  If such a row sits below
      the last indexed row, an appended record overwrites it.
    """

    plan = UpsertPlan()
    next_row = next_free_row(identity_index, config.data_start_row)
    highest = 0

    for record in records:
        digest = calc_identity(record, config.unique_keys, config.ignore_fields)
        matched = identity_index.get(digest) if digest is not None else None
        if matched is not None:
            row_number = matched + 1
            plan.updated += 1
        elif config.skip_unmatched:
            plan.skipped += 1
            logger.debug("Skipping unmatched record %s", digest and digest[:12])
            continue
        else:
            row_number = next_row
            next_row += 1
            plan.appended += 1
        highest = max(highest, row_number)
        _emit_record(plan, record, row_number, positions, config.overwrite_existing)

    return _finish(plan, highest, sheet_row_count)


def plan_append(
    config: TableConfig,
    positions: FieldPositionMap,
    last_data_row_index: Optional[int],
    records: Sequence[Mapping[str, Any]],
    sheet_row_count: int,
) -> UpsertPlan:
    """Plan writes that append every record after the last populated data row."""

    plan = UpsertPlan()
    if last_data_row_index is None:
        next_row = config.data_start_row
    else:
        next_row = max(last_data_row_index + 2, config.data_start_row)
    highest = 0
    for record in records:
        _emit_record(plan, record, next_row, positions, config.overwrite_existing)
        highest = next_row
        next_row += 1
        plan.appended += 1
    return _finish(plan, highest, sheet_row_count)


__all__ = [
    "FileData",
    "FileKind",
    "PendingUpload",
    "UpsertPlan",
    "WriteOperation",
    "cell_value",
    "next_free_row",
    "plan_append",
    "plan_upsert",
]
