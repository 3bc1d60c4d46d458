"""Content hashing used to recognise the same logical row across reads."""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sheetsync.values import FileData, identity_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowIdentity:
    hash: str
    row_number: int


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return hashlib.sha256(bytes(value)).hexdigest()
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    return str(value)


def canonical_json(payload: Any) -> str:
    """Serialise ``payload`` with sorted keys and no insignificant whitespace."""

    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def identity_payload(
    record: Mapping[str, Any],
    unique_keys: Iterable[str] = (),
    ignore_fields: Iterable[str] = (),
) -> Dict[str, str]:
    """Return the subset of ``record`` that takes part in its identity.

    Values are compared by the text the sheet shows for them, so ``1`` and
    ``"1"`` are the same value.  Blank values and file payloads are left out.
    """

    keys = sorted(set(unique_keys))
    if keys:
        items = [(key, record[key]) for key in keys if key in record]
    else:
        ignored = set(ignore_fields)
        items = [(key, value) for key, value in record.items() if key not in ignored]

    payload: Dict[str, str] = {}
    for key, value in items:
        if value is None or isinstance(value, FileData):
            continue
        text = identity_text(value)
        if text.strip():
            payload[key] = text
    return payload


def calc_identity(
    record: Mapping[str, Any],
    unique_keys: Iterable[str] = (),
    ignore_fields: Iterable[str] = (),
) -> Optional[str]:
    """Return a deterministic SHA-256 hash for ``record`` or ``None``.

    With ``unique_keys`` only those fields count; otherwise every field except
    ``ignore_fields`` does.  Blank values are left out so that a record which
    omits a field and a row whose cell for it is empty hash the same.  A
    record with nothing left to hash has no identity.
    """

    payload = identity_payload(record, unique_keys, ignore_fields)
    if not payload:
        return None
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def build_identity_index(identities: Iterable[Tuple[Optional[str], int]]) -> Dict[str, int]:
    """Return ``{hash: row_index}`` from ``(hash, row_index)`` pairs.

    Plain dict insertion: when two rows share a hash the later row wins.
    """

    index: Dict[str, int] = {}
    for digest, row_index in identities:
        if digest is None:
            continue
        index[digest] = row_index
    return index


def find_collisions(identities: Iterable[Tuple[Optional[str], int]]) -> Dict[str, List[int]]:
    """Return the hashes shared by more than one row with their row indices."""

    seen: Dict[str, List[int]] = {}
    for digest, row_index in identities:
        if digest is None:
            continue
        seen.setdefault(digest, []).append(row_index)
    collisions = {digest: rows for digest, rows in seen.items() if len(rows) > 1}
    for digest, rows in collisions.items():
        logger.warning(
            "Rows %s share identity %s; only row %d will be matched",
            [row + 1 for row in rows],
            digest[:12],
            rows[-1] + 1,
        )
    return collisions


__all__ = [
    "RowIdentity",
    "build_identity_index",
    "calc_identity",
    "canonical_json",
    "find_collisions",
    "identity_payload",
]
