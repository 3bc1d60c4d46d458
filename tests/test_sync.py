from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Set

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest

from sheetsync.columns import letters_to_index, split_cell_address
from sheetsync.config import TableConfig
from sheetsync.errors import ConfigError, SpreadsheetAccessError, UploadError
from sheetsync.grid import MergeRegion
from sheetsync.sheets_client import Dimension, GridSize, RangeValues
from sheetsync.sync import read_grouped_records, read_records, upsert
from sheetsync.upsert import FileData
from sheetsync.values import identity_text


class _MemoryTransport:
    """In-memory worksheet that records every call made against it."""

    def __init__(
        self,
        rows: Iterable[Sequence[Any]],
        *,
        row_count: Optional[int] = None,
        column_count: Optional[int] = None,
        merges: Iterable[MergeRegion] = (),
        failing_uploads: Set[str] = frozenset(),
        write_error: Optional[Exception] = None,
    ) -> None:
        self.rows: List[List[Any]] = [list(row) for row in rows]
        self.row_count = row_count if row_count is not None else len(self.rows)
        self.column_count = column_count or max((len(row) for row in self.rows), default=0)
        self.merges = list(merges)
        self.failing_uploads = set(failing_uploads)
        self.write_error = write_error
        self.calls: List[str] = []
        self.reads: List[str] = []
        self.writes: List[Any] = []
        self.uploads: List[tuple] = []

    def grid_size(self) -> GridSize:
        self.calls.append("grid_size")
        return GridSize(self.row_count, self.column_count)

    def read_range(self, start: str, end: str) -> RangeValues:
        self.calls.append("read")
        self.reads.append(f"{start}:{end}")
        start_col, start_row = split_cell_address(start)
        end_col, end_row = split_cell_address(end)
        first, last = letters_to_index(start_col), letters_to_index(end_col)
        rows = [list(row[first : last + 1]) for row in self.rows[start_row - 1 : end_row]]
        merges = [
            merge
            for merge in self.merges
            if merge.start_row <= end_row - 1 and merge.end_row >= start_row - 1
        ]
        return RangeValues(rows=rows, merges=merges)

    def write_cells(self, operations) -> None:
        self.calls.append("write")
        if self.write_error is not None:
            raise self.write_error
        for operation in operations:
            column, row_number = split_cell_address(operation.start)
            assert row_number <= self.row_count, "write beyond the sheet grid"
            self.writes.append(operation)
            self._put(row_number, letters_to_index(column), operation.values[0])

    def grow_dimension(self, axis: Dimension, count: int) -> None:
        self.calls.append("grow")
        assert axis is Dimension.ROWS
        self.row_count += count

    def upload_file(self, data: bytes, file_name: str, cell: str) -> None:
        self.calls.append("upload")
        if file_name in self.failing_uploads:
            raise UploadError(f"cannot upload {file_name}")
        self.uploads.append((cell, file_name, data))
        column, row_number = split_cell_address(cell)
        self._put(row_number, letters_to_index(column), [f"file:{file_name}"])

    def _put(self, row_number: int, column: int, values: Sequence[Any]) -> None:
        while len(self.rows) < row_number:
            self.rows.append([])
        row = self.rows[row_number - 1]
        while len(row) < column + len(values):
            row.append(None)
        for offset, value in enumerate(values):
            row[column + offset] = None if value == "" else value


def _people() -> _MemoryTransport:
    return _MemoryTransport(
        [["Name", "Age"], ["Alice", "30"], [None, None], ["Bob", "25"]]
    )


def test_read_records_drops_blank_rows_and_keeps_row_numbers():
    records = read_records(_people(), TableConfig())

    assert [(dict(r.fields), r.row_number) for r in records] == [
        ({"Name": "Alice", "Age": "30"}, 2),
        ({"Name": "Bob", "Age": "25"}, 4),
    ]


def test_read_identity_is_stable_across_reads():
    config = TableConfig()
    transport = _people()

    first = [record.identity for record in read_records(transport, config)]
    second = [record.identity for record in read_records(transport, config)]

    assert first == second
    assert all(first)
    assert read_records(transport, config)[1].row_identity.row_number == 4


def test_upsert_updates_matching_row_without_appending():
    transport = _people()
    config = TableConfig(unique_keys={"Name"})

    result = upsert(transport, config, [{"Name": "Alice", "Age": "31"}])

    assert (result.updated_count, result.appended_count) == (1, 0)
    assert transport.rows[1] == ["Alice", "31"]
    assert len(transport.rows) == 4
    assert "grow" not in transport.calls


def test_upsert_is_idempotent():
    transport = _people()
    config = TableConfig()
    records = [{"Name": "Carol", "Age": "40"}, {"Name": "Dan", "Age": "22"}]

    first = upsert(transport, config, records)
    second = upsert(transport, config, records)

    assert (first.updated_count, first.appended_count) == (0, 2)
    assert (second.updated_count, second.appended_count) == (2, 0)
    assert transport.rows[4:] == [["Carol", "40"], ["Dan", "22"]]


class _FormattedTransport(_MemoryTransport):
    """Reads cells back as the text the sheet displays, like the values API."""

    def read_range(self, start: str, end: str) -> RangeValues:
        result = super().read_range(start, end)
        rows = [[None if value is None else identity_text(value) for value in row] for row in result.rows]
        return RangeValues(rows=rows, merges=result.merges)


def test_upsert_with_non_string_keys_is_idempotent():
    transport = _FormattedTransport([["ID", "Name"]], row_count=10)
    config = TableConfig(unique_keys={"ID"})
    records = [{"ID": 1, "Name": "Alice"}, {"ID": 2, "Name": "Bob"}]

    first = upsert(transport, config, records)
    second = upsert(transport, config, records)

    assert (first.updated_count, first.appended_count) == (0, 2)
    assert (second.updated_count, second.appended_count) == (2, 0)
    assert [r.fields["ID"] for r in read_records(transport, config)] == ["1", "2"]


def test_whole_record_upsert_with_typed_values_is_idempotent():
    transport = _FormattedTransport([["Name", "Score", "Active"]], row_count=10)
    records = [{"Name": "Alice", "Score": 2.0, "Active": True}]

    upsert(transport, TableConfig(), records)
    second = upsert(transport, TableConfig(), records)

    assert (second.updated_count, second.appended_count) == (1, 0)
    assert transport.rows[1] == ["Alice", 2.0, True]


def test_whole_record_upsert_with_files_is_idempotent():
    transport = _MemoryTransport([["Name", "Photo"]], row_count=10)
    records = [{"Name": "Alice", "Photo": FileData("alice.png", b"a")}]

    upsert(transport, TableConfig(), records)
    second = upsert(transport, TableConfig(), records)

    assert (second.updated_count, second.appended_count) == (1, 0)
    assert [cell for cell, _, _ in transport.uploads] == ["B2", "B2"]
    assert len(read_records(transport, TableConfig())) == 1


def test_growth_happens_before_writes():
    transport = _people()

    result = upsert(transport, TableConfig(), [{"Name": "Eve", "Age": "19"}])

    assert result.appended_count == 1
    assert transport.calls == ["grid_size", "read", "read", "grow", "write"]
    assert transport.row_count == 5
    assert transport.rows[4] == ["Eve", "19"]


def test_reads_are_batched_in_order():
    transport = _MemoryTransport([["Name"], ["a"], ["b"], ["c"], ["d"]])

    records = read_records(transport, TableConfig(max_rows_per_read=2))

    assert transport.reads == ["A1:A1", "A1:A2", "A3:A4", "A5:A5"]
    assert [record.fields["Name"] for record in records] == ["a", "b", "c", "d"]


def test_trailing_blank_grid_rows_are_not_records():
    transport = _MemoryTransport([["Name"], ["a"]], row_count=1000)

    records = read_records(transport, TableConfig())

    assert len(records) == 1
    assert len(transport.reads) == 11


def test_merged_data_cells_fill_every_row():
    transport = _MemoryTransport(
        [["Group", "Item"], ["Fruit", "Apple"], [None, "Pear"]],
        merges=[MergeRegion(1, 2, 0, 0)],
    )

    records = read_records(transport, TableConfig())

    assert [dict(r.fields) for r in records] == [
        {"Group": "Fruit", "Item": "Apple"},
        {"Group": "Fruit", "Item": "Pear"},
    ]


def test_rows_above_data_start_are_not_records():
    transport = _MemoryTransport([["Report"], ["Name"], ["Alice"]])

    records = read_records(transport, TableConfig(title_row=2, data_start_row=3))

    assert [(r.fields["Name"], r.row_number) for r in records] == [("Alice", 3)]


def test_upload_failures_are_reported_and_do_not_stop_other_uploads(caplog):
    caplog.set_level(logging.ERROR, logger="sheetsync.sync")
    transport = _MemoryTransport([["Name", "Photo"]], row_count=10)
    records = [
        {"Name": "Alice", "Photo": FileData("alice.png", b"a")},
        {"Name": "Bob", "Photo": FileData("bob.png", b"b")},
    ]
    transport.failing_uploads.add("alice.png")

    result = upsert(transport, TableConfig(), records)

    assert result.appended_count == 2
    assert [(f.cell, f.file_name) for f in result.upload_failures] == [("B2", "alice.png")]
    assert transport.uploads == [("B3", "bob.png", b"b")]
    assert transport.rows[1][0] == "Alice"
    assert "alice.png" in caplog.text


def test_unexpected_upload_errors_are_reported(caplog):
    class _ResettingTransport(_MemoryTransport):
        def upload_file(self, data: bytes, file_name: str, cell: str) -> None:
            if file_name == "alice.png":
                raise ConnectionResetError("connection reset by peer")
            super().upload_file(data, file_name, cell)

    caplog.set_level(logging.ERROR, logger="sheetsync.sync")
    transport = _ResettingTransport([["Name", "Photo"]], row_count=10)
    records = [
        {"Name": "Alice", "Photo": FileData("alice.png", b"a")},
        {"Name": "Bob", "Photo": FileData("bob.png", b"b")},
    ]

    result = upsert(transport, TableConfig(), records)

    assert result.appended_count == 2
    assert [(f.cell, f.error) for f in result.upload_failures] == [("B2", "connection reset by peer")]
    assert transport.uploads == [("B3", "bob.png", b"b")]
    assert "alice.png" in caplog.text


def test_write_errors_propagate_and_skip_uploads():
    transport = _MemoryTransport(
        [["Name", "Photo"]],
        row_count=10,
        write_error=SpreadsheetAccessError("quota"),
    )

    with pytest.raises(SpreadsheetAccessError):
        upsert(transport, TableConfig(), [{"Name": "Alice", "Photo": FileData("a.png", b"")}])

    assert "upload" not in transport.calls


def test_append_mode_never_matches():
    transport = _people()

    result = upsert(transport, TableConfig(upsert_mode=False), [{"Name": "Alice", "Age": "30"}])

    assert (result.updated_count, result.appended_count) == (0, 1)
    assert transport.rows[4] == ["Alice", "30"]


def test_skip_unmatched_reports_skipped_records():
    transport = _people()
    config = TableConfig(unique_keys={"Name"}, skip_unmatched=True)

    result = upsert(transport, config, [{"Name": "Zed", "Age": "1"}, {"Name": "Bob", "Age": "26"}])

    assert (result.updated_count, result.appended_count, result.skipped_count) == (1, 0, 1)
    assert transport.rows[3] == ["Bob", "26"]


def _grouped() -> _MemoryTransport:
    return _MemoryTransport(
        [
            ["Person", None, "Pet"],
            ["Name", "Age", "Pet Name"],
            ["Alice", "30", "Rex"],
            ["Bob", "25", None],
        ],
        merges=[MergeRegion(0, 0, 0, 1)],
    )


GROUPED = TableConfig(title_row=2, data_start_row=3)


def test_read_grouped_records_splits_by_category():
    grouped = read_grouped_records(_grouped(), GROUPED)

    assert list(grouped) == ["Person", "Pet"]
    assert [dict(r.fields) for r in grouped["Person"]] == [
        {"Name": "Alice", "Age": "30"},
        {"Name": "Bob", "Age": "25"},
    ]
    assert [(dict(r.fields), r.row_number) for r in grouped["Pet"]] == [({"Pet Name": "Rex"}, 3)]


def test_group_upsert_only_touches_group_columns():
    transport = _grouped()

    result = upsert(transport, GROUPED, [{"Pet Name": "Rex"}, {"Pet Name": "Tom", "Name": "x"}], group="Pet")

    assert (result.updated_count, result.appended_count) == (1, 1)
    assert [(op.start, op.end) for op in transport.writes] == [("C3", "C3"), ("C4", "C4")]


def test_unknown_group_is_rejected():
    with pytest.raises(ConfigError):
        upsert(_grouped(), GROUPED, [{"Name": "x"}], group="Plants")


def test_grouped_read_needs_category_row():
    with pytest.raises(ConfigError):
        read_grouped_records(_people(), TableConfig())
