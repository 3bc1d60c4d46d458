"""Field name <-> column letter mapping resolved from the title row."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sheetsync.columns import index_to_letters, letters_to_index


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class FieldPositionMap:
    """Bidirectional mapping between field names and column letters.

    ``by_column`` is built by inserting titles in column order.  ``by_field``
    is its inversion, so when two columns carry the same title the right-most
    column is the one used for writes.  ``categories`` maps a column to its
    group label for two-row headers and plays no part in name resolution.
    """

    by_column: Dict[str, str] = field(default_factory=dict)
    by_field: Dict[str, str] = field(default_factory=dict)
    categories: Dict[str, str] = field(default_factory=dict)

    def column_for(self, field_name: str) -> Optional[str]:
        return self.by_field.get(field_name)

    def field_for(self, column: str) -> Optional[str]:
        return self.by_column.get(column)

    @property
    def field_names(self) -> List[str]:
        return list(self.by_field)

    def category_names(self) -> List[str]:
        """Return the group labels in first-seen column order."""

        seen: Dict[str, None] = {}
        for label in self.categories.values():
            seen.setdefault(label, None)
        return list(seen)

    def columns_in(self, category: str) -> List[str]:
        return [column for column, label in self.categories.items() if label == category]

    def restricted_to(self, category: str) -> "FieldPositionMap":
        """Return a map holding only the titled columns of ``category``."""

        columns = set(self.columns_in(category))
        forward = {column: title for column, title in self.by_column.items() if column in columns}
        return FieldPositionMap(
            by_column=forward,
            by_field=_invert(forward),
            categories={column: category for column in forward},
        )

    def to_record(self, columns: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate a column-letter keyed row into a field-name keyed record."""

        record: Dict[str, Any] = {}
        for column, value in columns.items():
            title = self.by_column.get(column)
            if title is not None:
                record[title] = value
        return record


def _invert(forward: Mapping[str, str]) -> Dict[str, str]:
    return {title: column for column, title in forward.items()}


def build_position_map(
    title_values: Sequence[Any],
    category_values: Optional[Sequence[Any]] = None,
) -> FieldPositionMap:
    """Build the position map from the raw title row (and category row)."""

    forward: Dict[str, str] = {}
    for index, value in enumerate(title_values):
        title = _clean(value)
        if title is not None:
            forward[index_to_letters(index)] = title

    categories: Dict[str, str] = {}
    for index, value in enumerate(category_values or ()):
        label = _clean(value)
        if label is not None:
            categories[index_to_letters(index)] = label

    return FieldPositionMap(by_column=forward, by_field=_invert(forward), categories=categories)


def position_map_from_columns(
    title_columns: Mapping[str, Any],
    category_columns: Optional[Mapping[str, Any]] = None,
) -> FieldPositionMap:
    """Build the position map from column-letter keyed header rows."""

    def _ordered(columns: Mapping[str, Any]) -> List[Any]:
        if not columns:
            return []
        width = max(letters_to_index(column) for column in columns) + 1
        values: List[Any] = [None] * width
        for column, value in columns.items():
            values[letters_to_index(column)] = value
        return values

    return build_position_map(
        _ordered(title_columns),
        _ordered(category_columns) if category_columns is not None else None,
    )


__all__ = ["FieldPositionMap", "build_position_map", "position_map_from_columns"]
