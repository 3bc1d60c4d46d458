"""Exception hierarchy shared by the SheetSync modules."""
from __future__ import annotations


class SheetsSyncError(Exception):
    """Base exception for spreadsheet synchronisation errors."""


class ConfigError(SheetsSyncError, ValueError):
    """Raised when a table configuration or settings file is invalid."""


class MalformedRangeError(SheetsSyncError, ValueError):
    """Raised when a range ends before it starts or has no width."""


class TransportError(SheetsSyncError):
    """Raised when the remote store rejects a read, write or growth call."""


class SpreadsheetAccessError(TransportError):
    """Raised when the Google Sheets API returns an error."""


class SheetsPermissionError(SpreadsheetAccessError):
    """Raised when the service account lacks sufficient permissions."""


class UploadError(TransportError):
    """Raised when a single file or image upload fails."""


__all__ = [
    "ConfigError",
    "MalformedRangeError",
    "SheetsPermissionError",
    "SheetsSyncError",
    "SpreadsheetAccessError",
    "TransportError",
    "UploadError",
]
