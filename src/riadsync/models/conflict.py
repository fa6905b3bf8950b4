"""Persisted iCal conflict between a stored booking and an incoming event."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from riadsync.database import Base, UTCDateTime, utcnow
from riadsync.modules.ical.codec import CalendarEvent, EventStatus


class Resolution(str, Enum):
    KEEP_EXISTING = "keep_existing"
    USE_INCOMING = "use_incoming"
    MANUAL = "manual"


# Resolutions that close a conflict for good; MANUAL keeps it open.
FINAL_RESOLUTIONS = (Resolution.KEEP_EXISTING, Resolution.USE_INCOMING)


class ICalConflict(Base):
    """An incoming event whose dates overlap a booking it does not own.

    Both sides are snapshotted at detection time so the resolution UI shows
    what the sync actually saw, even if the booking changes later.
    """

    __tablename__ = "ical_conflicts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    feed_id: Mapped[int | None] = mapped_column(ForeignKey("ical_feeds.id", ondelete="SET NULL"), nullable=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"), nullable=True)

    existing_booking_id: Mapped[int | None] = mapped_column(ForeignKey("bookings.id"), nullable=True)
    existing_feed_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    existing_uid: Mapped[str] = mapped_column(String(500), nullable=False)
    existing_summary: Mapped[str] = mapped_column(Text, default="")
    existing_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    existing_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    existing_status: Mapped[str] = mapped_column(String(20), default=EventStatus.CONFIRMED.value)

    incoming_uid: Mapped[str] = mapped_column(String(500), nullable=False)
    incoming_summary: Mapped[str] = mapped_column(Text, default="")
    incoming_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    incoming_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    incoming_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    incoming_end: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    incoming_status: Mapped[str] = mapped_column(String(20), default=EventStatus.CONFIRMED.value)

    resolution: Mapped[str | None] = mapped_column(String(20), nullable=True)  # None = pending
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_resolved(self) -> bool:
        return self.resolution in {r.value for r in FINAL_RESOLUTIONS}

    @property
    def is_pending(self) -> bool:
        return not self.is_resolved

    @property
    def existing_event(self) -> CalendarEvent:
        return CalendarEvent(
            uid=self.existing_uid,
            summary=self.existing_summary or "",
            start_date=self.existing_start,
            end_date=self.existing_end,
            status=EventStatus(self.existing_status),
            created_at=self.created_at,
            last_modified=self.created_at,
        )

    @property
    def incoming_event(self) -> CalendarEvent:
        return CalendarEvent(
            uid=self.incoming_uid,
            summary=self.incoming_summary or "",
            description=self.incoming_description,
            location=self.incoming_location,
            start_date=self.incoming_start,
            end_date=self.incoming_end,
            status=EventStatus(self.incoming_status),
            created_at=self.created_at,
            last_modified=self.updated_at or self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<ICalConflict id={self.id} booking={self.existing_booking_id} "
            f"incoming={self.incoming_uid!r} resolution={self.resolution}>"
        )
