"""Per-table configuration passed explicitly to every engine call."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import AbstractSet, Any, Iterable, Mapping

from sheetsync.errors import ConfigError
from sheetsync.ranges import MAX_ROWS_PER_READ


@dataclass(frozen=True)
class TableConfig:
    """Layout and write policy of one worksheet table.

    Row numbers are one-based sheet rows.  ``unique_keys`` selects the fields
    that identify a record; when empty the whole record is used, minus
    ``ignore_fields``.  ``upsert_mode=False`` appends every record without
    matching.
    """

    title_row: int = 1
    data_start_row: int = 2
    unique_keys: AbstractSet[str] = field(default_factory=frozenset)
    overwrite_existing: bool = False
    skip_unmatched: bool = False
    ignore_fields: AbstractSet[str] = field(default_factory=frozenset)
    upsert_mode: bool = True
    max_rows_per_read: int = MAX_ROWS_PER_READ

    def __post_init__(self) -> None:
        object.__setattr__(self, "unique_keys", frozenset(self.unique_keys or ()))
        object.__setattr__(self, "ignore_fields", frozenset(self.ignore_fields or ()))
        if self.title_row < 1:
            raise ConfigError("title_row must be >= 1")
        if self.data_start_row <= self.title_row:
            raise ConfigError("data_start_row must come after title_row")
        if self.max_rows_per_read < 1:
            raise ConfigError("max_rows_per_read must be positive")

    @property
    def category_row(self) -> int:
        """Row holding group labels for two-row headers (0 when there is none)."""

        return self.title_row - 1

    def with_unique_keys(self, keys: Iterable[str]) -> "TableConfig":
        return replace(self, unique_keys=frozenset(keys))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TableConfig":
        """Build a config from a JSON-style mapping, ignoring unknown keys."""

        known = {name for name in cls.__dataclass_fields__}
        kwargs = {key: value for key, value in data.items() if key in known}
        for key in ("unique_keys", "ignore_fields"):
            if key in kwargs:
                value = kwargs[key]
                if isinstance(value, str):
                    value = [value]
                kwargs[key] = frozenset(str(item) for item in value or ())
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc


__all__ = ["TableConfig"]
