"""Error taxonomy shared by the store, registry and API layers."""

from __future__ import annotations


class SiteWatchError(Exception):
    """Base class for all SiteWatch errors."""


class NotFoundError(SiteWatchError):
    """Raised when an endpoint ID (or store key) does not exist."""

    def __init__(self, what: str) -> None:
        self.what = what
        super().__init__(f"not found: {what}")


class ConflictError(SiteWatchError):
    """Raised when an added endpoint duplicates an existing name or URL."""


class ValidationError(SiteWatchError):
    """Raised for missing required fields or malformed values (e.g. durations)."""


class StorageError(SiteWatchError):
    """Raised when a persistence transaction fails."""


class TransportError(SiteWatchError):
    """Raised inside the executor for request failures.

    Never escapes ``execute_check`` — it is always converted into a
    failed ``CheckOutcome``.
    """
