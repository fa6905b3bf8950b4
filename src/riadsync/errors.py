"""Exception types raised by the sync core and its collaborators."""

from __future__ import annotations


class RiadSyncError(Exception):
    """Base class for all RiadSync errors."""


class FetchError(RiadSyncError):
    """The feed URL could not be retrieved (network or HTTP failure)."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class DecodeError(RiadSyncError):
    """The payload as a whole is not iCalendar text."""


class ConflictDetected(RiadSyncError):
    """A sync finished with unresolved overlapping bookings."""

    def __init__(self, conflicts: list) -> None:
        super().__init__(f"{len(conflicts)} unresolved conflict(s)")
        self.conflicts = conflicts


class InvalidExportToken(RiadSyncError):
    """The export resource token is missing, undecodable or incomplete."""


class ConflictAlreadyResolved(RiadSyncError):
    """A resolved conflict was asked to take a different outcome."""


class FeedNotFound(RiadSyncError):
    def __init__(self, feed_id: int) -> None:
        super().__init__(f"iCal feed {feed_id} not found")
        self.feed_id = feed_id


class SyncInProgress(RiadSyncError):
    def __init__(self, feed_id: int) -> None:
        super().__init__(f"A sync of feed {feed_id} is already running")
        self.feed_id = feed_id
