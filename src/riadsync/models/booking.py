"""Booking model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from riadsync.database import Base, UTCDateTime, utcnow

BOOKING_STATUSES = ("confirmed", "tentative", "cancelled")


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"), nullable=True)
    feed_id: Mapped[int | None] = mapped_column(ForeignKey("ical_feeds.id", ondelete="SET NULL"), nullable=True)
    external_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)  # iCal UID
    channel: Mapped[str] = mapped_column(String(50), default="direct")  # direct, ical
    guest_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    guest_email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    check_in: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    check_out: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="confirmed")  # confirmed, tentative, cancelled
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)  # Raw iCal summary
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    prop: Mapped["Property"] = relationship(back_populates="bookings")  # noqa: F821
    room: Mapped["Room"] = relationship()  # noqa: F821

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} property_id={self.property_id} room_id={self.room_id} "
            f"ref={self.external_ref!r} {self.check_in:%Y-%m-%d}..{self.check_out:%Y-%m-%d}>"
        )

    @property
    def nights(self) -> int:
        return (self.check_out.date() - self.check_in.date()).days

    @property
    def is_active(self) -> bool:
        return self.status != "cancelled"
