"""One synchronization cycle for one iCal feed.

fetch -> decode -> diff against stored bookings -> apply or raise conflicts.
The engine only sees stores and a fetcher; keeping two syncs of the same
feed from running at once is the orchestrator's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

from riadsync.database import utcnow
from riadsync.errors import ConflictDetected, DecodeError, FetchError
from riadsync.events import Event, EventBus, EventType, event_bus
from riadsync.models.booking import Booking
from riadsync.models.conflict import ICalConflict, Resolution
from riadsync.models.feed import FeedStatus, ICalFeed
from riadsync.modules.calendar_sync.conflicts import ConflictResolver, choose_resolution
from riadsync.modules.calendar_sync.fetcher import FeedFetcher
from riadsync.modules.calendar_sync.stores import BookingStore, ConflictStore, FeedStore
from riadsync.modules.ical.codec import CalendarEvent, EventStatus, decode

logger = logging.getLogger(__name__)

CONFLICT_ERROR = "Conflicts detected during sync"


class SyncPhase(str, Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    DECODING = "decoding"
    DIFFING = "diffing"
    APPLYING = "applying"
    CONFLICT = "conflict"
    COMPLETE = "complete"


@dataclass
class SyncResult:
    success: bool = False
    events_processed: int = 0
    events_created: int = 0
    events_updated: int = 0
    events_removed: int = 0
    events_skipped: int = 0
    conflicts: list[ICalConflict] = field(default_factory=list)
    resolved_conflicts: list[ICalConflict] = field(default_factory=list)
    error: str | None = None
    phase: SyncPhase = SyncPhase.PENDING  # COMPLETE, or the phase that failed

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    def raise_for_conflicts(self) -> None:
        if self.conflicts:
            raise ConflictDetected(self.conflicts)


def _booking_status(event: CalendarEvent) -> str:
    return "tentative" if event.status is EventStatus.TENTATIVE else "confirmed"


def _differs(booking: Booking, event: CalendarEvent) -> bool:
    return (
        booking.check_in != event.start_date
        or booking.check_out != event.end_date
        or (booking.summary or "") != event.summary
        or booking.description != event.description
        or booking.status != _booking_status(event)
    )


class SyncEngine:
    def __init__(
        self,
        fetcher: FeedFetcher,
        bookings: BookingStore,
        feeds: FeedStore,
        conflicts: ConflictStore,
        *,
        auto_resolve: bool = False,
        local_priority: int = 10,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._bookings = bookings
        self._feeds = feeds
        self._conflicts = conflicts
        self._auto_resolve = auto_resolve
        self._local_priority = local_priority
        self._bus = bus or event_bus
        self._clock = clock
        self._resolver = ConflictResolver(bookings, conflicts, bus=self._bus, clock=clock)

    def sync(self, feed: ICalFeed) -> SyncResult:
        result = SyncResult()
        logger.info("Syncing iCal feed %s (%s)", feed.name, feed.id)

        result.phase = SyncPhase.FETCHING
        try:
            text = self._fetcher.fetch(feed.url)
        except FetchError as exc:
            return self._fail(feed, result, str(exc))

        result.phase = SyncPhase.DECODING
        try:
            events = decode(text)
        except DecodeError as exc:
            return self._fail(feed, result, str(exc))

        result.phase = SyncPhase.DIFFING
        seen: set[str] = set()
        for event in events:
            if not event.uid:
                logger.debug("Discarding event without UID in feed %s", feed.id)
                continue
            if event.uid in seen:
                logger.warning("Duplicate UID %s in feed %s, keeping the first", event.uid, feed.id)
                result.events_skipped += 1
                continue
            seen.add(event.uid)
            result.events_processed += 1
            if event.status is not EventStatus.CANCELLED:
                if not event.dates_valid:
                    logger.warning(
                        "Skipping event %s in feed %s: missing or unparseable dates",
                        event.uid, feed.id,
                    )
                    result.events_skipped += 1
                    continue
                if not event.has_valid_range:
                    logger.warning(
                        "Skipping event %s in feed %s: end %s is not after start %s",
                        event.uid, feed.id, event.end_date, event.start_date,
                    )
                    result.events_skipped += 1
                    continue
            self._apply_event(feed, event, result)

        if feed.imports:
            self._remove_missing(feed, seen, result)
        return self._complete(feed, result)

    def _apply_event(self, feed: ICalFeed, event: CalendarEvent, result: SyncResult) -> None:
        existing = self._bookings.find_booking_by_external_ref(feed.id, event.uid)

        if event.status is EventStatus.CANCELLED:
            if existing is not None and existing.is_active:
                self._cancel(existing, "cancelled in feed")
                result.events_removed += 1
            return

        if existing is not None and existing.is_active and not _differs(existing, event):
            return

        others = [
            b for b in self._bookings.find_overlapping(
                feed.property_id, feed.room_id, event.start_date, event.end_date
            )
            if existing is None or b.id != existing.id
        ]
        if others:
            self._raise_conflict(feed, event, others[0], result)
            return

        result.phase = SyncPhase.APPLYING
        if existing is not None:
            booking = self._bookings.update_booking(
                existing.id,
                check_in=event.start_date,
                check_out=event.end_date,
                summary=event.summary,
                description=event.description,
                status=_booking_status(event),
            )
            result.events_updated += 1
            logger.info("Booking %s updated from feed %s", booking.id, feed.id)
            self._publish(EventType.BOOKING_MODIFIED, booking)
        else:
            booking = self._bookings.create_booking(
                property_id=feed.property_id,
                room_id=feed.room_id,
                feed_id=feed.id,
                external_ref=event.uid,
                channel="ical",
                check_in=event.start_date,
                check_out=event.end_date,
                summary=event.summary,
                description=event.description,
                status=_booking_status(event),
            )
            result.events_created += 1
            logger.info(
                "New booking detected: %s, %s to %s",
                feed.name, event.start_date, event.end_date,
            )
            self._publish(EventType.BOOKING_NEW, booking)

    def _raise_conflict(
        self, feed: ICalFeed, event: CalendarEvent, booking: Booking, result: SyncResult
    ) -> None:
        if self._conflicts.is_superseded(feed.id, event.uid, event.start_date, event.end_date):
            logger.debug("Event %s from feed %s already lost a resolution", event.uid, feed.id)
            return

        result.phase = SyncPhase.CONFLICT
        incoming = {
            "incoming_summary": event.summary,
            "incoming_description": event.description,
            "incoming_location": event.location,
            "incoming_start": event.start_date,
            "incoming_end": event.end_date,
            "incoming_status": event.status.value,
        }
        conflict = self._conflicts.find_open(feed.id, event.uid, booking.id)
        if conflict is not None:
            conflict = self._conflicts.refresh_conflict(conflict.id, **incoming)
        else:
            conflict = self._conflicts.record_conflict(
                feed_id=feed.id,
                property_id=feed.property_id,
                room_id=feed.room_id,
                existing_booking_id=booking.id,
                existing_feed_id=booking.feed_id,
                existing_uid=booking.external_ref or f"booking-{booking.id}",
                existing_summary=booking.summary or "",
                existing_start=booking.check_in,
                existing_end=booking.check_out,
                existing_status=booking.status.upper(),
                incoming_uid=event.uid,
                **incoming,
            )
            logger.warning(
                "Conflict: %s from feed %s overlaps booking %s",
                event.uid, feed.id, booking.id,
            )

        if self._auto_resolve and feed.auto_sync:
            existing_feed = self._feeds.get_feed(booking.feed_id) if booking.feed_id else None
            choice = choose_resolution(existing_feed, feed, self._local_priority)
            conflict = self._resolver.resolve(conflict, choice)
            result.resolved_conflicts.append(conflict)
            if choice is Resolution.USE_INCOMING:
                result.events_updated += 1
            return

        result.conflicts.append(conflict)
        self._bus.publish(Event(
            event_type=EventType.CONFLICT_DETECTED,
            data={
                "conflict_id": conflict.id,
                "feed_id": feed.id,
                "booking_id": booking.id,
                "property_id": feed.property_id,
            },
        ))

    def _remove_missing(self, feed: ICalFeed, seen: set[str], result: SyncResult) -> None:
        """Bookings this feed produced that it no longer lists are cancelled."""
        for booking in self._bookings.list_feed_bookings(feed.id):
            if booking.external_ref not in seen:
                self._cancel(booking, "removed from feed")
                result.events_removed += 1

    def _cancel(self, booking: Booking, reason: str) -> None:
        booking = self._bookings.update_booking(booking.id, status="cancelled")
        logger.info("Booking cancelled (%s): %s", reason, booking)
        self._publish(EventType.BOOKING_CANCELLED, booking)

    def _complete(self, feed: ICalFeed, result: SyncResult) -> SyncResult:
        now = self._clock()
        if result.conflicts:
            result.success = False
            result.error = CONFLICT_ERROR
            self._feeds.update_feed(feed.id, status=FeedStatus.ERROR, error=CONFLICT_ERROR, last_sync=now)
        else:
            result.success = True
            self._feeds.update_feed(feed.id, status=FeedStatus.ACTIVE, error=None, last_sync=now)
        result.phase = SyncPhase.COMPLETE
        logger.info(
            "Feed %s synced: %d processed, %d created, %d updated, %d removed, %d conflicts",
            feed.id, result.events_processed, result.events_created,
            result.events_updated, result.events_removed, len(result.conflicts),
        )
        self._bus.publish(Event(
            event_type=EventType.FEED_SYNCED,
            data={"feed_id": feed.id, "success": result.success},
        ))
        return result

    def _fail(self, feed: ICalFeed, result: SyncResult, message: str) -> SyncResult:
        # last_sync stays untouched so the next attempt is a clean retry.
        result.success = False
        result.error = message
        self._feeds.update_feed(feed.id, status=FeedStatus.ERROR, error=message)
        logger.error("Sync of feed %s failed during %s: %s", feed.id, result.phase.value, message)
        self._bus.publish(Event(
            event_type=EventType.FEED_SYNC_FAILED,
            data={"feed_id": feed.id, "phase": result.phase.value, "error": message},
        ))
        return result

    def _publish(self, event_type: EventType, booking: Booking) -> None:
        self._bus.publish(Event(
            event_type=event_type,
            data={"booking_id": booking.id, "property_id": booking.property_id},
        ))
