from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class FetchError(RuntimeError):
    """Raised when a listing fetch is requested with unusable arguments."""


class StorageError(RuntimeError):
    """Raised when reading or writing state in SQLite fails."""
