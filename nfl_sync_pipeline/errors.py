"""Exception types raised by the sync pipeline."""

from __future__ import annotations

from typing import Any, Optional


class SyncError(Exception):
    """Base class for sync pipeline errors."""

    pass


class FeedUnavailable(SyncError):
    """The provider feed could not serve a page after retries.

    The cursor that was being requested is kept so the caller can decide
    whether to resume from it or abort.
    """

    def __init__(
        self,
        resource_type: str,
        cursor: Any,
        message: str,
        status: Optional[int] = None,
    ) -> None:
        self.resource_type = resource_type
        self.cursor = cursor
        self.status = status
        self.message = message
        detail = f"status {status}: {message}" if status is not None else message
        super().__init__(f"Feed unavailable for {resource_type} (cursor={cursor!r}): {detail}")


class StoreUnavailable(SyncError):
    """The entity store could not complete a read or write."""

    pass


class LedgerError(SyncError):
    pass


class LedgerWriteError(LedgerError):
    """The ledger document could not be persisted; the prior document is intact."""

    pass


class LedgerReadError(LedgerError):
    """The ledger document exists but cannot be parsed."""

    pass


__all__ = [
    "SyncError",
    "FeedUnavailable",
    "StoreUnavailable",
    "LedgerError",
    "LedgerWriteError",
    "LedgerReadError",
]
