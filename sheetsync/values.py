"""Cell value types and the coercions shared by writes and row identity.

Cells are written ``RAW`` and read back as formatted text, so a value only
round-trips if both sides agree on its text form.  ``cell_value`` shapes a
Python value for the values API; ``identity_text`` is the text the sheet
shows for it once written.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any


class FileKind(str, enum.Enum):
    IMAGE = "image"
    FILE = "file"


@dataclass(frozen=True)
class FileData:
    """Binary payload bound to a record field, uploaded after the cell writes."""

    file_name: str
    data: bytes = field(repr=False)
    kind: FileKind = FileKind.IMAGE

    @classmethod
    def from_path(cls, path: str | Path, kind: FileKind = FileKind.IMAGE) -> "FileData":
        file_path = Path(path)
        return cls(file_name=file_path.name, data=file_path.read_bytes(), kind=kind)


def cell_value(value: Any) -> Any:
    """Return ``value`` in a shape the values API accepts."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return ", ".join("" if item is None else str(item) for item in value)
    if isinstance(value, enum.Enum):
        return value.value
    return value


def identity_text(value: Any) -> str:
    """Return the text a cell shows for ``value`` after a ``RAW`` write."""

    value = cell_value(value)
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


__all__ = ["FileData", "FileKind", "cell_value", "identity_text"]
