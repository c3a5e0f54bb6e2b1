"""Exception taxonomy shared by readers, the pool and the catalog store."""
from __future__ import annotations


class CatalogSyncError(Exception):
    """Base class for catalog-sync failures."""


class TransientSourceError(CatalogSyncError):
    """A source reader failed on the network or HTTP layer.

    The work item stays unfinished so a later run picks it up again.
    """


class AntiBotChallenge(CatalogSyncError):
    """A source detected automated access (CAPTCHA, 429, block page).

    Not an item error: it only feeds the throttle window.
    """

    def __init__(self, message: str = "anti-bot challenge", source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class StoreWriteError(CatalogSyncError):
    """A read or batched write against the catalog store failed."""

    def __init__(self, entity: str, message: str) -> None:
        super().__init__(f"{entity}: {message}")
        self.entity = entity


class InvariantViolation(CatalogSyncError):
    """A record is missing a required field or is otherwise inconsistent at write time."""
