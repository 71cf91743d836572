from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class PayloadError(RuntimeError):
    """Raised when a favorites page or one of its records cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        index: int | None = None,
        post_id: int | None = None,
    ) -> None:
        super().__init__(message)
        self.index = index
        self.post_id = post_id


class FetchError(RuntimeError):
    """Raised when a favorites page cannot be fetched."""


class StorageError(RuntimeError):
    """Raised when reading or writing state in SQLite fails."""


class SearchIndexError(RuntimeError):
    """Raised when building or querying the full-text index fails."""
