"""Overlap detection, priority policy and conflict resolution."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from riadsync.database import utcnow
from riadsync.errors import ConflictAlreadyResolved
from riadsync.events import Event, EventBus, EventType, event_bus
from riadsync.models.conflict import ICalConflict, Resolution
from riadsync.models.feed import ICalFeed
from riadsync.modules.calendar_sync.stores import BookingStore, ConflictStore

logger = logging.getLogger(__name__)


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Half-open interval overlap. Back-to-back stays do not overlap."""
    return start_a < end_b and start_b < end_a


def choose_resolution(
    existing_feed: ICalFeed | None,
    incoming_feed: ICalFeed,
    local_priority: int = 10,
) -> Resolution:
    """Default outcome for automated sync.

    The higher priority wins. Bookings that did not come from a feed carry
    ``local_priority``. On a tie the incumbent (earlier ``last_sync``) wins,
    and when that cannot be decided the existing booking stays.
    """
    existing_priority = existing_feed.priority if existing_feed is not None else local_priority
    if incoming_feed.priority > existing_priority:
        return Resolution.USE_INCOMING
    if incoming_feed.priority < existing_priority:
        return Resolution.KEEP_EXISTING

    existing_sync = existing_feed.last_sync if existing_feed is not None else None
    incoming_sync = incoming_feed.last_sync
    if incoming_sync is not None and (existing_sync is None or incoming_sync < existing_sync):
        return Resolution.USE_INCOMING
    return Resolution.KEEP_EXISTING


class ConflictResolver:
    """Applies a resolution choice to a stored conflict.

    Re-applying the outcome a conflict already has is a no-op, so callers can
    retry freely. MANUAL leaves the booking alone and keeps the conflict open.
    """

    def __init__(
        self,
        bookings: BookingStore,
        conflicts: ConflictStore,
        bus: EventBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._bookings = bookings
        self._conflicts = conflicts
        self._bus = bus or event_bus
        self._clock = clock

    def resolve(self, conflict: ICalConflict, choice: Resolution | str) -> ICalConflict:
        choice = Resolution(choice)
        if conflict.is_resolved:
            if conflict.resolution == choice.value:
                logger.debug("Conflict %s already resolved as %s", conflict.id, choice.value)
                return conflict
            raise ConflictAlreadyResolved(
                f"Conflict {conflict.id} was resolved as {conflict.resolution}, not {choice.value}"
            )

        if choice is Resolution.MANUAL:
            if conflict.resolution != Resolution.MANUAL.value:
                conflict = self._conflicts.mark(conflict.id, Resolution.MANUAL, None)
                logger.info("Conflict %s flagged for manual review", conflict.id)
            return conflict

        if choice is Resolution.USE_INCOMING:
            self._apply_incoming(conflict)

        conflict = self._conflicts.mark(conflict.id, choice, self._clock())
        logger.info(
            "Conflict %s resolved as %s (booking %s vs %s)",
            conflict.id, choice.value, conflict.existing_booking_id, conflict.incoming_uid,
        )
        self._bus.publish(Event(
            event_type=EventType.CONFLICT_RESOLVED,
            data={
                "conflict_id": conflict.id,
                "resolution": choice.value,
                "booking_id": conflict.existing_booking_id,
                "property_id": conflict.property_id,
            },
        ))
        return conflict

    def _apply_incoming(self, conflict: ICalConflict) -> None:
        """Overwrite the existing booking with the incoming event.

        Ownership moves to the incoming feed so later syncs of that feed
        match the booking by UID instead of re-raising the conflict.
        """
        changes = {
            "check_in": conflict.incoming_start,
            "check_out": conflict.incoming_end,
            "summary": conflict.incoming_summary,
            "description": conflict.incoming_description,
            "feed_id": conflict.feed_id,
            "external_ref": conflict.incoming_uid,
            "channel": "ical",
        }
        if conflict.feed_id is not None:
            # The feed's own copy of this UID would otherwise stay live next to the takeover.
            previous = self._bookings.find_booking_by_external_ref(
                conflict.feed_id, conflict.incoming_uid
            )
            if (
                previous is not None
                and previous.id != conflict.existing_booking_id
                and previous.is_active
            ):
                previous = self._bookings.update_booking(previous.id, status="cancelled")
                logger.info("Booking cancelled (superseded by conflict %s): %s", conflict.id, previous)
                self._bus.publish(Event(
                    event_type=EventType.BOOKING_CANCELLED,
                    data={"booking_id": previous.id, "property_id": previous.property_id},
                ))

        booking = None
        if conflict.existing_booking_id is not None:
            booking = self._bookings.get_booking(conflict.existing_booking_id)
        if booking is None:
            # The booking vanished since detection; the incoming stay still stands.
            booking = self._bookings.create_booking(
                property_id=conflict.property_id,
                room_id=conflict.room_id,
                status="confirmed",
                **changes,
            )
            event_type = EventType.BOOKING_NEW
        else:
            booking = self._bookings.update_booking(booking.id, **changes)
            event_type = EventType.BOOKING_MODIFIED
        self._bus.publish(Event(
            event_type=event_type,
            data={"booking_id": booking.id, "property_id": booking.property_id},
        ))
