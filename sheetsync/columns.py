"""Column letter conversion and A1 notation helpers.

Two letter encodings are in use and they are intentionally kept apart:

``index_to_letters``
    Zero-based column *index* to letters (``0 -> A``, ``26 -> AA``).  Used
    when walking the cells of a row.

``count_to_letters``
    One-based column *count* to the letters of the last column
    (``1 -> A``, ``27 -> AA``).  Used when sizing a range from the number of
    columns reported by the sheet metadata.

Mixing the two produces an off-by-one column, so every caller names the one
it needs explicitly.
"""

from __future__ import annotations

import re
from typing import List, MutableSequence, Tuple

from sheetsync.errors import MalformedRangeError

_CELL_RE = re.compile(r"^([A-Za-z]+)(\d+)$")


def index_to_letters(index: int) -> str:
    """Return the column letters for the zero-based ``index``."""

    if index < 0:
        raise ValueError("Column index must be >= 0")
    letters: List[str] = []
    while index >= 0:
        letters.append(chr(65 + index % 26))
        index = index // 26 - 1
    return "".join(reversed(letters))


def count_to_letters(count: int) -> str:
    """Return the letters of the ``count``-th column (one-based)."""

    if count < 1:
        raise ValueError("Column count must be >= 1")
    letters: MutableSequence[str] = []
    while count:
        count, remainder = divmod(count - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def letters_to_index(letters: str) -> int:
    """Return the zero-based column index for ``letters``."""

    text = (letters or "").strip().upper()
    if not text or not text.isalpha() or not text.isascii():
        raise ValueError(f"Invalid column letters: {letters!r}")
    value = 0
    for char in text:
        value = value * 26 + (ord(char) - 64)
    return value - 1


def quote_title(title: str) -> str:
    """Return a worksheet title quoted according to A1 notation rules."""

    safe = (title or "").strip()
    if len(safe) >= 2 and safe[0] == safe[-1] and safe[0] in {"'", '"'}:
        safe = safe[1:-1].replace("''", "'")
    if not safe:
        raise ValueError("Worksheet title must not be empty")
    return "'" + safe.replace("'", "''") + "'"


def cell_address(column: str, row: int) -> str:
    """Return an A1 cell address such as ``B7``."""

    if row < 1:
        raise MalformedRangeError(f"Row number must be >= 1, got {row}")
    return f"{column}{row}"


def split_cell_address(address: str) -> Tuple[str, int]:
    """Split ``B7`` into ``("B", 7)``."""

    match = _CELL_RE.match((address or "").strip())
    if not match:
        raise MalformedRangeError(f"Invalid cell address: {address!r}")
    return match.group(1).upper(), int(match.group(2))


def a1_range(title: str, start: str, end: str) -> str:
    """Return ``'title'!start:end`` after checking the bounds are ordered."""

    start_column, start_row = split_cell_address(start)
    end_column, end_row = split_cell_address(end)
    if end_row < start_row or letters_to_index(end_column) < letters_to_index(start_column):
        raise MalformedRangeError(f"Range end {end} precedes start {start}")
    return f"{quote_title(title)}!{start}:{end}"


__all__ = [
    "a1_range",
    "cell_address",
    "count_to_letters",
    "index_to_letters",
    "letters_to_index",
    "quote_title",
    "split_cell_address",
]
