import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sheetsync.positions import FieldPositionMap, build_position_map, position_map_from_columns


def test_titles_are_trimmed_and_blanks_skipped():
    positions = build_position_map([" Name ", None, "", "Age"])

    assert positions.by_column == {"A": "Name", "D": "Age"}
    assert positions.column_for("Age") == "D"
    assert positions.field_for("A") == "Name"
    assert positions.column_for("Missing") is None


def test_duplicate_titles_resolve_to_last_column():
    positions = build_position_map(["Name", "Note", "Note"])

    assert positions.field_for("B") == "Note"
    assert positions.field_for("C") == "Note"
    assert positions.column_for("Note") == "C"


def test_numeric_titles_are_stringified():
    positions = build_position_map([2024, "Total"])

    assert positions.column_for("2024") == "A"


def test_categories_group_columns_without_affecting_names():
    positions = build_position_map(
        ["Name", "Age", "Pet"],
        ["Person", "Person", "Animal"],
    )

    assert positions.category_names() == ["Person", "Animal"]
    assert positions.columns_in("Person") == ["A", "B"]
    assert positions.column_for("Person") is None

    animals = positions.restricted_to("Animal")
    assert animals.by_column == {"C": "Pet"}
    assert animals.column_for("Name") is None


def test_to_record_keeps_only_titled_columns():
    positions = build_position_map(["Name", None, "Age"])

    record = positions.to_record({"A": "Alice", "B": "stray", "C": "30", "D": "x"})

    assert record == {"Name": "Alice", "Age": "30"}


def test_position_map_from_letter_keyed_rows():
    positions = position_map_from_columns({"C": "Age", "A": "Name"})

    assert positions.column_for("Name") == "A"
    assert positions.column_for("Age") == "C"


def test_empty_map_resolves_nothing():
    positions = FieldPositionMap()

    assert positions.field_names == []
    assert positions.to_record({"A": 1}) == {}
