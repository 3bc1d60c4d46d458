"""Read and upsert records against one worksheet table.

Every call is independent: the sheet size, the header and the data rows are
read afresh through the transport, the identity index is rebuilt from them
and the planned writes are sent back.  Nothing is cached between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from sheetsync.columns import cell_address, count_to_letters
from sheetsync.config import TableConfig
from sheetsync.errors import ConfigError
from sheetsync.grid import LogicalRow, MergeRegion, build_cells, is_blank, reconstruct_grid
from sheetsync.hash import RowIdentity, build_identity_index, calc_identity, find_collisions
from sheetsync.positions import FieldPositionMap, build_position_map
from sheetsync.ranges import plan_batches, validate_range
from sheetsync.sheets_client import Dimension, GridSize, SheetTransport
from sheetsync.upsert import UpsertPlan, plan_append, plan_upsert
from sheetsync.values import FileData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Record:
    """A data row translated to field names."""

    fields: Mapping[str, Any]
    row_number: int
    identity: Optional[str] = None

    @property
    def row_identity(self) -> Optional[RowIdentity]:
        if self.identity is None:
            return None
        return RowIdentity(self.identity, self.row_number)


@dataclass(frozen=True)
class UploadFailure:
    cell: str
    file_name: str
    error: str


@dataclass
class WriteResult:
    updated_count: int = 0
    appended_count: int = 0
    skipped_count: int = 0
    upload_failures: List[UploadFailure] = field(default_factory=list)


def _read_header(
    transport: SheetTransport,
    config: TableConfig,
    grid: GridSize,
    with_categories: bool = False,
) -> FieldPositionMap:
    """Read the title row (and the category row above it) into a position map."""

    if grid.column_count < 1 or grid.row_count < config.title_row:
        return FieldPositionMap()

    first_row = config.title_row
    if with_categories:
        if config.category_row < 1:
            raise ConfigError("Grouped tables need a category row above the title row")
        first_row = config.category_row

    last_column = count_to_letters(grid.column_count)
    validate_range(first_row, config.title_row, grid.column_count)
    result = transport.read_range(
        cell_address("A", first_row), cell_address(last_column, config.title_row)
    )
    rows = list(result.rows)
    rows.extend([] for _ in range(config.title_row - first_row + 1 - len(rows)))
    # Merges are sheet-absolute; the header read starts at ``first_row``.
    merges = [merge.shifted(-(first_row - 1)) for merge in result.merges]
    cells = build_cells(rows, merges)
    if not cells:
        return FieldPositionMap()

    titles = [cell.value for cell in cells[-1]]
    categories = [cell.value for cell in cells[0]] if with_categories else None
    return build_position_map(titles, categories)


def _read_rows(transport: SheetTransport, config: TableConfig, grid: GridSize) -> List[LogicalRow]:
    """Read every row in capped batches and return the non-blank data rows."""

    if grid.column_count < 1:
        return []
    last_column = count_to_letters(grid.column_count)
    raw_rows: List[Sequence[Any]] = []
    merges: Set[MergeRegion] = set()

    for start, end in plan_batches(grid.row_count + 1, 1, config.max_rows_per_read):
        validate_range(start, end, grid.column_count)
        result = transport.read_range(cell_address("A", start), cell_address(last_column, end))
        batch = list(result.rows)
        expected = end - start + 1
        batch.extend([] for _ in range(expected - len(batch)))
        raw_rows.extend(batch[:expected])
        merges.update(result.merges)

    ordered_merges = sorted(merges, key=lambda m: (m.start_row, m.start_col, m.end_row, m.end_col))
    rows = reconstruct_grid(raw_rows, ordered_merges)
    return [row for row in rows if row.row_number >= config.data_start_row]


def _to_records(
    rows: Iterable[LogicalRow],
    positions: FieldPositionMap,
    config: TableConfig,
) -> List[Record]:
    records: List[Record] = []
    for row in rows:
        fields = positions.to_record(row.columns)
        if not fields or all(is_blank(value) for value in fields.values()):
            continue
        identity = calc_identity(fields, config.unique_keys, config.ignore_fields)
        records.append(Record(fields=fields, row_number=row.row_number, identity=identity))
    return records


def read_records(transport: SheetTransport, config: TableConfig) -> List[Record]:
    """Return the data rows of the table as records, in sheet order."""

    grid = transport.grid_size()
    positions = _read_header(transport, config, grid)
    records = _to_records(_read_rows(transport, config, grid), positions, config)
    logger.info("Read %d records from %d sheet rows", len(records), grid.row_count)
    return records


def read_grouped_records(transport: SheetTransport, config: TableConfig) -> Dict[str, List[Record]]:
    """Return records per category of a table with a two-row header.

    Each category's records only carry the fields of that category's columns
    and their identity is computed from those fields alone.
    """

    grid = transport.grid_size()
    positions = _read_header(transport, config, grid, with_categories=True)
    rows = _read_rows(transport, config, grid)
    grouped: Dict[str, List[Record]] = {}
    for category in positions.category_names():
        grouped[category] = _to_records(rows, positions.restricted_to(category), config)
    logger.info(
        "Read %d groups (%s) from %d sheet rows",
        len(grouped),
        ", ".join(grouped),
        grid.row_count,
    )
    return grouped


def _file_fields(records: Sequence[Mapping[str, Any]]) -> Set[str]:
    return {
        name
        for record in records
        for name, value in record.items()
        if isinstance(value, FileData)
    }


def _plan(
    config: TableConfig,
    positions: FieldPositionMap,
    existing: Sequence[Record],
    records: Sequence[Mapping[str, Any]],
    sheet_row_count: int,
) -> UpsertPlan:
    if not config.upsert_mode:
        last_index = max((record.row_number - 1 for record in existing), default=None)
        return plan_append(config, positions, last_index, records, sheet_row_count)

    file_fields = _file_fields(records)
    if file_fields and not config.unique_keys:
        # File cells hold upload links, never the payload; match without them.
        config = replace(config, ignore_fields=config.ignore_fields | file_fields)
        pairs = [
            (calc_identity(record.fields, (), config.ignore_fields), record.row_number - 1)
            for record in existing
        ]
    else:
        pairs = [(record.identity, record.row_number - 1) for record in existing]
    find_collisions(pairs)
    index = build_identity_index(pairs)
    return plan_upsert(config, positions, index, records, sheet_row_count)


def upsert(
    transport: SheetTransport,
    config: TableConfig,
    records: Sequence[Mapping[str, Any]],
    group: Optional[str] = None,
) -> WriteResult:
    """Update matching rows and append the rest.

    Growth and cell writes must succeed and their :class:`TransportError`
    propagates.  File uploads run afterwards, one at a time; a failed upload
    is logged and reported in ``WriteResult.upload_failures`` without
    affecting the other writes.
    """

    grid = transport.grid_size()
    positions = _read_header(transport, config, grid, with_categories=group is not None)
    if group is not None:
        if group not in positions.category_names():
            raise ConfigError(f"Unknown column group {group!r}")
        positions = positions.restricted_to(group)

    existing = _to_records(_read_rows(transport, config, grid), positions, config)
    plan = _plan(config, positions, existing, records, grid.row_count)

    if plan.growth:
        logger.info(
            "Growing sheet by %d rows to reach row %d", plan.growth, plan.required_rows
        )
        transport.grow_dimension(Dimension.ROWS, plan.growth)
    if plan.operations:
        transport.write_cells(plan.operations)

    result = WriteResult(
        updated_count=plan.updated,
        appended_count=plan.appended,
        skipped_count=plan.skipped,
    )
    for upload in plan.uploads:
        try:
            transport.upload_file(upload.file.data, upload.file.file_name, upload.cell)
        except Exception as exc:  # noqa: BLE001 - uploads are best-effort
            logger.exception("Upload of %s to %s failed", upload.file.file_name, upload.cell)
            result.upload_failures.append(
                UploadFailure(cell=upload.cell, file_name=upload.file.file_name, error=str(exc))
            )

    logger.info(
        "Upsert finished: %d updated, %d appended, %d skipped, %d/%d uploads failed",
        result.updated_count,
        result.appended_count,
        result.skipped_count,
        len(result.upload_failures),
        len(plan.uploads),
    )
    return result


__all__ = [
    "Record",
    "UploadFailure",
    "WriteResult",
    "read_grouped_records",
    "read_records",
    "upsert",
]
