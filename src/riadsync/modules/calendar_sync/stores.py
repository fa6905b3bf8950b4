"""Repository interfaces the sync core depends on, plus SQLAlchemy implementations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import case, or_, select, true, update
from sqlalchemy.orm import Session

from riadsync.database import utcnow
from riadsync.models.booking import Booking
from riadsync.models.conflict import ICalConflict, Resolution
from riadsync.models.feed import ICalFeed
from riadsync.models.property import Property, Room

logger = logging.getLogger(__name__)


class BookingStore(Protocol):
    def get_booking(self, booking_id: int) -> Booking | None: ...

    def find_booking_by_external_ref(self, feed_id: int, uid: str) -> Booking | None: ...

    def find_overlapping(
        self, property_id: int, room_id: int | None, start: datetime, end: datetime
    ) -> list[Booking]: ...

    def create_booking(self, **fields: Any) -> Booking: ...

    def update_booking(self, booking_id: int, **changes: Any) -> Booking: ...

    def list_bookings(
        self, property_id: int, room_id: int | None, start: datetime, end: datetime
    ) -> list[Booking]: ...

    def list_feed_bookings(self, feed_id: int) -> list[Booking]: ...


class FeedStore(Protocol):
    def get_feed(self, feed_id: int) -> ICalFeed | None: ...

    def list_feeds(self, property_id: int | None = None) -> list[ICalFeed]: ...

    def create_feed(self, **fields: Any) -> ICalFeed: ...

    def update_feed(self, feed_id: int, **changes: Any) -> ICalFeed | None: ...

    def delete_feed(self, feed_id: int) -> bool: ...


class ConflictStore(Protocol):
    def get_conflict(self, conflict_id: int) -> ICalConflict | None: ...

    def find_open(self, feed_id: int, incoming_uid: str, booking_id: int) -> ICalConflict | None: ...

    def is_superseded(self, feed_id: int, uid: str, start: datetime, end: datetime) -> bool: ...

    def record_conflict(self, **fields: Any) -> ICalConflict: ...

    def refresh_conflict(self, conflict_id: int, **changes: Any) -> ICalConflict: ...

    def mark(self, conflict_id: int, resolution: Resolution, resolved_at: datetime | None) -> ICalConflict: ...

    def list_conflicts(
        self, property_id: int | None = None, pending_only: bool = False
    ) -> list[ICalConflict]: ...


class PropertyStore(Protocol):
    def get_property(self, property_id: int) -> Property | None: ...

    def get_room(self, room_id: int) -> Room | None: ...


def _room_scope(room_id: int | None):
    """A room-level calendar also competes with whole-property bookings."""
    if room_id is None:
        return true()
    return or_(Booking.room_id == room_id, Booking.room_id.is_(None))


class SqlBookingStore:
    """BookingStore backed by a SQLAlchemy session. Commits every write."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_booking(self, booking_id: int) -> Booking | None:
        return self._session.get(Booking, booking_id)

    def find_booking_by_external_ref(self, feed_id: int, uid: str) -> Booking | None:
        return self._session.scalars(
            select(Booking)
            .where(Booking.feed_id == feed_id, Booking.external_ref == uid)
            # A cancelled copy can share the ref with the live booking; prefer the live one.
            .order_by(case((Booking.status == "cancelled", 1), else_=0), Booking.id.desc())
        ).first()

    def find_overlapping(
        self, property_id: int, room_id: int | None, start: datetime, end: datetime
    ) -> list[Booking]:
        # Strict interval overlap: a checkout on the same instant as a check-in is fine.
        stmt = (
            select(Booking)
            .where(
                Booking.property_id == property_id,
                _room_scope(room_id),
                Booking.status != "cancelled",
                Booking.check_in < end,
                Booking.check_out > start,
            )
            .order_by(Booking.check_in, Booking.id)
        )
        return list(self._session.scalars(stmt))

    def create_booking(self, **fields: Any) -> Booking:
        booking = Booking(**fields)
        self._session.add(booking)
        self._session.commit()
        return booking

    def update_booking(self, booking_id: int, **changes: Any) -> Booking:
        booking = self._session.get(Booking, booking_id)
        if booking is None:
            raise LookupError(f"Booking {booking_id} not found")
        for key, value in changes.items():
            setattr(booking, key, value)
        booking.updated_at = utcnow()
        self._session.commit()
        return booking

    def list_bookings(
        self, property_id: int, room_id: int | None, start: datetime, end: datetime
    ) -> list[Booking]:
        return self.find_overlapping(property_id, room_id, start, end)

    def list_feed_bookings(self, feed_id: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.feed_id == feed_id, Booking.status != "cancelled")
            .order_by(Booking.check_in, Booking.id)
        )
        return list(self._session.scalars(stmt))


class SqlFeedStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_feed(self, feed_id: int) -> ICalFeed | None:
        return self._session.get(ICalFeed, feed_id)

    def list_feeds(self, property_id: int | None = None) -> list[ICalFeed]:
        stmt = select(ICalFeed).order_by(ICalFeed.created_at.desc(), ICalFeed.id.desc())
        if property_id is not None:
            stmt = stmt.where(ICalFeed.property_id == property_id)
        return list(self._session.scalars(stmt))

    def create_feed(self, **fields: Any) -> ICalFeed:
        feed = ICalFeed(**fields)
        self._session.add(feed)
        self._session.commit()
        logger.info("Created iCal feed %s for property %s", feed.name, feed.property_id)
        return feed

    def update_feed(self, feed_id: int, **changes: Any) -> ICalFeed | None:
        feed = self._session.get(ICalFeed, feed_id)
        if feed is None:
            return None
        for key, value in changes.items():
            setattr(feed, key, value)
        feed.updated_at = utcnow()
        self._session.commit()
        return feed

    def delete_feed(self, feed_id: int) -> bool:
        feed = self._session.get(ICalFeed, feed_id)
        if feed is None:
            return False
        # Bookings outlive the feed that brought them in.
        self._session.execute(update(Booking).where(Booking.feed_id == feed_id).values(feed_id=None))
        self._session.execute(
            update(ICalConflict).where(ICalConflict.feed_id == feed_id).values(feed_id=None)
        )
        self._session.delete(feed)
        self._session.commit()
        logger.info("Deleted iCal feed %s", feed_id)
        return True


class SqlConflictStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_conflict(self, conflict_id: int) -> ICalConflict | None:
        return self._session.get(ICalConflict, conflict_id)

    def find_open(self, feed_id: int, incoming_uid: str, booking_id: int) -> ICalConflict | None:
        stmt = select(ICalConflict).where(
            ICalConflict.feed_id == feed_id,
            ICalConflict.incoming_uid == incoming_uid,
            ICalConflict.existing_booking_id == booking_id,
            or_(ICalConflict.resolution.is_(None), ICalConflict.resolution == Resolution.MANUAL.value),
        )
        return self._session.scalars(stmt).first()

    def is_superseded(self, feed_id: int, uid: str, start: datetime, end: datetime) -> bool:
        """Whether this exact event already lost a resolved conflict."""
        lost_as_incoming = select(ICalConflict.id).where(
            ICalConflict.feed_id == feed_id,
            ICalConflict.incoming_uid == uid,
            ICalConflict.incoming_start == start,
            ICalConflict.incoming_end == end,
            ICalConflict.resolution == Resolution.KEEP_EXISTING.value,
        )
        lost_as_existing = select(ICalConflict.id).where(
            ICalConflict.existing_feed_id == feed_id,
            ICalConflict.existing_uid == uid,
            ICalConflict.existing_start == start,
            ICalConflict.existing_end == end,
            ICalConflict.resolution == Resolution.USE_INCOMING.value,
        )
        return (
            self._session.scalars(lost_as_incoming).first() is not None
            or self._session.scalars(lost_as_existing).first() is not None
        )

    def record_conflict(self, **fields: Any) -> ICalConflict:
        conflict = ICalConflict(**fields)
        self._session.add(conflict)
        self._session.commit()
        return conflict

    def refresh_conflict(self, conflict_id: int, **changes: Any) -> ICalConflict:
        conflict = self._session.get(ICalConflict, conflict_id)
        if conflict is None:
            raise LookupError(f"Conflict {conflict_id} not found")
        for key, value in changes.items():
            setattr(conflict, key, value)
        conflict.updated_at = utcnow()
        self._session.commit()
        return conflict

    def mark(self, conflict_id: int, resolution: Resolution, resolved_at: datetime | None) -> ICalConflict:
        return self.refresh_conflict(
            conflict_id, resolution=Resolution(resolution).value, resolved_at=resolved_at
        )

    def list_conflicts(
        self, property_id: int | None = None, pending_only: bool = False
    ) -> list[ICalConflict]:
        stmt = select(ICalConflict).order_by(ICalConflict.created_at, ICalConflict.id)
        if property_id is not None:
            stmt = stmt.where(ICalConflict.property_id == property_id)
        if pending_only:
            stmt = stmt.where(
                or_(ICalConflict.resolution.is_(None), ICalConflict.resolution == Resolution.MANUAL.value)
            )
        return list(self._session.scalars(stmt))


class SqlPropertyStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_property(self, property_id: int) -> Property | None:
        return self._session.get(Property, property_id)

    def get_room(self, room_id: int) -> Room | None:
        return self._session.get(Room, room_id)
