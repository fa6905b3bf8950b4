"""Feed sync orchestration: sessions, single-flight locking and due-feed scans."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import Session

from riadsync.config import section
from riadsync.database import get_session, utcnow
from riadsync.errors import ConflictDetected, FeedNotFound, SyncInProgress
from riadsync.events import EventBus
from riadsync.models.feed import ICalFeed
from riadsync.modules.calendar_sync.engine import SyncEngine, SyncResult
from riadsync.modules.calendar_sync.fetcher import FeedFetcher, HttpFeedFetcher
from riadsync.modules.calendar_sync.stores import SqlBookingStore, SqlConflictStore, SqlFeedStore

logger = logging.getLogger(__name__)


def is_due(feed: ICalFeed, now: datetime) -> bool:
    """Whether the scheduler should sync this feed now."""
    if not feed.auto_sync or not feed.imports:
        return False
    if feed.last_sync is None:
        return True
    return feed.last_sync + timedelta(minutes=feed.sync_interval) <= now


class FeedLocks:
    """Non-reentrant, non-blocking claim per feed id.

    Only feeds with a sync in flight are tracked, so the set stays as small
    as the number of concurrent syncs.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[int] = set()

    def acquire(self, feed_id: int) -> bool:
        with self._guard:
            if feed_id in self._held:
                return False
            self._held.add(feed_id)
            return True

    def release(self, feed_id: int) -> None:
        with self._guard:
            self._held.discard(feed_id)

    def is_locked(self, feed_id: int) -> bool:
        with self._guard:
            return feed_id in self._held


class CalendarSyncer:
    """Runs feed syncs against the database, one at a time per feed."""

    def __init__(
        self,
        fetcher: FeedFetcher | None = None,
        session_factory: Callable[[], Session] = get_session,
        bus: EventBus | None = None,
    ) -> None:
        cfg = section("sync")
        self._fetcher = fetcher or HttpFeedFetcher()
        self._session_factory = session_factory
        self._bus = bus
        self._auto_resolve = bool(cfg.get("auto_resolve_conflicts", False))
        self._local_priority = int(cfg.get("local_booking_priority", 10))
        self._locks = FeedLocks()

    def _engine(self, session: Session) -> SyncEngine:
        return SyncEngine(
            self._fetcher,
            SqlBookingStore(session),
            SqlFeedStore(session),
            SqlConflictStore(session),
            auto_resolve=self._auto_resolve,
            local_priority=self._local_priority,
            bus=self._bus,
        )

    def is_syncing(self, feed_id: int) -> bool:
        return self._locks.is_locked(feed_id)

    def sync_feed_by_id(self, feed_id: int) -> SyncResult:
        """Sync a single feed. Raises SyncInProgress if it is already running."""
        if not self._locks.acquire(feed_id):
            raise SyncInProgress(feed_id)
        try:
            session = self._session_factory()
            try:
                feed = session.get(ICalFeed, feed_id)
                if feed is None:
                    raise FeedNotFound(feed_id)
                return self._engine(session).sync(feed)
            finally:
                session.close()
        finally:
            self._locks.release(feed_id)

    def _sync_many(self, feed_ids: list[int]) -> dict[int, SyncResult]:
        results: dict[int, SyncResult] = {}
        for feed_id in feed_ids:
            try:
                result = self.sync_feed_by_id(feed_id)
                results[feed_id] = result
                result.raise_for_conflicts()
            except SyncInProgress:
                logger.info("Feed %s is already syncing, skipping", feed_id)
            except ConflictDetected as exc:
                logger.warning("Feed %s needs review: %s", feed_id, exc)
            except Exception:
                logger.exception("Failed to sync iCal feed %s", feed_id)
        return results

    def sync_all(self) -> dict[int, SyncResult]:
        """Sync every feed that imports bookings."""
        session = self._session_factory()
        try:
            feed_ids = [f.id for f in session.query(ICalFeed).all() if f.imports]
        finally:
            session.close()
        return self._sync_many(feed_ids)

    def sync_due_feeds(self, now: datetime | None = None) -> dict[int, SyncResult]:
        """Sync auto-sync feeds whose interval has elapsed."""
        now = now or utcnow()
        session = self._session_factory()
        try:
            feed_ids = [f.id for f in session.query(ICalFeed).all() if is_due(f, now)]
        finally:
            session.close()
        if feed_ids:
            logger.info("%d iCal feed(s) due for sync", len(feed_ids))
        return self._sync_many(feed_ids)
