"""Connection settings for SheetSync, stored as JSON beside the user's data."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from sheetsync.config import TableConfig
from sheetsync.errors import ConfigError
from sheetsync.ranges import MAX_ROWS_PER_READ
from sheetsync.sheets_client import GoogleSheetsTransport, build_transport, parse_spreadsheet_id

logger = logging.getLogger(__name__)


def _home() -> Path:
    value = os.environ.get("SHEETSYNC_HOME")
    if value:
        return Path(value).expanduser()
    return Path.home() / ".sheetsync"


DEFAULT_WORKSHEET_TITLE = "Sheet1"
ENV_PREFIX = "SHEETSYNC_"


def default_settings_path() -> str:
    return str(_home() / "sync_settings.json")


def default_credentials_path() -> str:
    return str(_home() / "service_account.json")


@dataclass
class SyncSettings:
    spreadsheet_id: str = ""
    credential_path: str = ""
    worksheet_title: str = DEFAULT_WORKSHEET_TITLE
    drive_folder_id: str = ""
    max_rows_per_read: int = MAX_ROWS_PER_READ

    def table_config(self, **overrides: Any) -> TableConfig:
        """Return a :class:`TableConfig` using these settings' read cap."""

        overrides.setdefault("max_rows_per_read", self.max_rows_per_read)
        return TableConfig(**overrides)

    def to_json(self) -> Dict[str, object]:
        return {
            "spreadsheet_id": self.spreadsheet_id,
            "credential_path": self.credential_path,
            "worksheet_title": self.worksheet_title,
            "drive_folder_id": self.drive_folder_id,
            "max_rows_per_read": self.max_rows_per_read,
        }


def _defaults() -> Dict[str, object]:
    return {
        "spreadsheet_id": "",
        "credential_path": default_credentials_path(),
        "worksheet_title": DEFAULT_WORKSHEET_TITLE,
        "drive_folder_id": "",
        "max_rows_per_read": MAX_ROWS_PER_READ,
    }


def _clamp_rows(value: object, default: int) -> int:
    try:
        return max(1, min(1000, int(value)))
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid max_rows_per_read value %r", value)
        return default


def _merge(defaults: Mapping[str, object], data: Mapping[str, Any]) -> Dict[str, object]:
    merged: Dict[str, object] = dict(defaults)
    for key, value in data.items():
        if key not in defaults:
            continue
        if key == "max_rows_per_read":
            merged[key] = _clamp_rows(value, MAX_ROWS_PER_READ)
        elif isinstance(value, str):
            merged[key] = value.strip()
    return merged


def _environment_overrides() -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for key in _defaults():
        value = os.environ.get(ENV_PREFIX + key.upper())
        if value:
            overrides[key] = value
    credentials = os.environ.get(ENV_PREFIX + "CREDENTIALS_PATH")
    if credentials:
        overrides["credential_path"] = credentials
    return overrides


def _ensure_sync_settings(path: str) -> Dict[str, object]:
    defaults = _defaults()
    if not os.path.exists(path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(defaults, handle, indent=2)
        return dict(defaults)

    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Settings file {path} is not valid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {path} must contain a JSON object")
    return _merge(defaults, data)


def load_sync_settings(path: Optional[str] = None) -> SyncSettings:
    """Load settings from ``path`` (created with defaults when missing).

    ``SHEETSYNC_*`` environment variables take precedence over the file.
    """

    path = path or default_settings_path()
    data = _merge(_ensure_sync_settings(path), _environment_overrides())
    settings = SyncSettings(
        spreadsheet_id=parse_spreadsheet_id(str(data.get("spreadsheet_id", ""))),
        credential_path=str(data.get("credential_path") or default_credentials_path()),
        worksheet_title=str(data.get("worksheet_title") or DEFAULT_WORKSHEET_TITLE),
        drive_folder_id=str(data.get("drive_folder_id", "")),
        max_rows_per_read=int(data.get("max_rows_per_read", MAX_ROWS_PER_READ)),
    )
    logger.debug("Loaded sync settings from %s", path)
    return settings


def open_transport(settings: SyncSettings) -> GoogleSheetsTransport:
    """Return an authenticated transport for the configured worksheet."""

    if not settings.spreadsheet_id:
        raise ConfigError("No spreadsheet configured")
    return build_transport(
        settings.spreadsheet_id,
        settings.worksheet_title,
        settings.credential_path,
        drive_folder_id=settings.drive_folder_id or None,
    )


def save_sync_settings(settings: SyncSettings, path: Optional[str] = None) -> None:
    path = path or default_settings_path()
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    payload = settings.to_json()

    with open(path, "w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)


__all__ = [
    "DEFAULT_WORKSHEET_TITLE",
    "SyncSettings",
    "default_credentials_path",
    "default_settings_path",
    "load_sync_settings",
    "open_transport",
    "save_sync_settings",
]
