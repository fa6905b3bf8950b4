from riadsync.modules.calendar_sync.conflicts import ConflictResolver, choose_resolution, overlaps
from riadsync.modules.calendar_sync.engine import SyncEngine, SyncPhase, SyncResult
from riadsync.modules.calendar_sync.fetcher import FeedFetcher, HttpFeedFetcher
from riadsync.modules.calendar_sync.sync import CalendarSyncer, is_due

__all__ = [
    "CalendarSyncer",
    "ConflictResolver",
    "FeedFetcher",
    "HttpFeedFetcher",
    "SyncEngine",
    "SyncPhase",
    "SyncResult",
    "choose_resolution",
    "is_due",
    "overlaps",
]
