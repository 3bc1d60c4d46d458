"""Service account validation and the shared, lock-guarded credential cache."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from sheetsync.errors import SheetsSyncError

logger = logging.getLogger(__name__)

__all__ = [
    "CredentialProvider",
    "CredentialsError",
    "CredentialsFileInvalidError",
    "REQUIRED_FIELDS",
    "SCOPES",
    "ensure_service_account_file",
    "load_service_account_data",
]

SCOPES: Sequence[str] = (
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
)


class CredentialsFileInvalidError(SheetsSyncError):
    """Raised when a service account JSON file is missing required data."""


class CredentialsError(SheetsSyncError):
    """Raised when a valid access token cannot be obtained."""


REQUIRED_FIELDS: Iterable[str] = (
    "type",
    "project_id",
    "private_key_id",
    "private_key",
    "client_email",
    "client_id",
    "token_uri",
)


def _normalise_private_key(key: str) -> str:
    key = key.replace("\r\n", "\n").replace("\r", "\n")
    key = key.replace("\\n", "\n")
    if not key.endswith("\n"):
        key += "\n"
    return key


def _load_json(path: Path) -> Mapping[str, object]:
    try:
        with path.open("r", encoding="utf-8-sig") as handle:
            raw = handle.read()
    except OSError as exc:
        raise CredentialsFileInvalidError(f"Could not read JSON file: {exc}") from exc

    payload_text = raw.lstrip("\ufeff").strip()
    if not payload_text:
        raise CredentialsFileInvalidError("Service account JSON is empty.")

    try:
        payload = json.loads(payload_text)
    except json.JSONDecodeError as exc:
        raise CredentialsFileInvalidError(f"JSON parse error: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise CredentialsFileInvalidError("Service account JSON must be an object.")
    return payload


def _validate_payload(payload: Mapping[str, object]) -> Dict[str, object]:
    data: Dict[str, object] = dict(payload)
    missing: list[str] = []

    for field in REQUIRED_FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            missing.append(field)

    if data.get("type") != "service_account":
        missing.append("type")

    if missing:
        ordered = ", ".join(sorted(dict.fromkeys(missing)))
        raise CredentialsFileInvalidError(f"JSON missing fields: {ordered}")

    data["private_key"] = _normalise_private_key(str(data["private_key"]))
    return data


def load_service_account_data(path: Path) -> Dict[str, object]:
    """Return validated service account data without modifying ``path``."""

    return _validate_payload(_load_json(path))


def ensure_service_account_file(path: Path) -> Dict[str, object]:
    """Validate ``path`` and persist a normalised copy of the credentials."""

    payload = load_service_account_data(path)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)
    return payload


class CredentialProvider:
    """Hands out a valid access credential, refreshing it at most once at a time.

    Callers on other threads block on the lock while a refresh is in flight
    and then receive the refreshed credential.
    """

    def __init__(
        self,
        credentials,
        *,
        request_factory: Callable[[], object] = Request,
    ) -> None:
        self._credentials = credentials
        self._request_factory = request_factory
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: str | Path, scopes: Optional[Sequence[str]] = None) -> "CredentialProvider":
        payload = ensure_service_account_file(Path(path).expanduser())
        try:
            credentials = service_account.Credentials.from_service_account_info(
                payload, scopes=list(scopes or SCOPES)
            )
        except ValueError as exc:
            raise CredentialsFileInvalidError(str(exc)) from exc
        return cls(credentials)

    @property
    def credentials(self):
        return self._credentials

    def get_credential(self):
        """Return credentials holding a non-expired token, or raise."""

        if self._credentials.valid:
            return self._credentials
        with self._lock:
            if not self._credentials.valid:
                logger.debug("Refreshing service account access token")
                try:
                    self._credentials.refresh(self._request_factory())
                except GoogleAuthError as exc:
                    raise CredentialsError(f"Token refresh failed: {exc}") from exc
        return self._credentials
