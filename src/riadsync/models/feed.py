"""iCal feed configuration model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from riadsync.database import Base, UTCDateTime, utcnow

MIN_SYNC_INTERVAL = 15
MAX_SYNC_INTERVAL = 1440
MIN_PRIORITY = 1
MAX_PRIORITY = 10


class FeedStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    ERROR = "error"


class FeedDirection(str, Enum):
    IMPORT = "import"
    EXPORT = "export"
    BOTH = "both"


class ICalFeed(Base):
    __tablename__ = "ical_feeds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id"), nullable=False)
    room_id: Mapped[int | None] = mapped_column(ForeignKey("rooms.id"), nullable=True)
    last_sync: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    auto_sync: Mapped[bool] = mapped_column(Boolean, default=True)
    sync_interval: Mapped[int] = mapped_column(Integer, default=60)  # minutes
    status: Mapped[str] = mapped_column(String(20), default=FeedStatus.PENDING.value)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    direction: Mapped[str] = mapped_column(String(10), default=FeedDirection.IMPORT.value)
    priority: Mapped[int] = mapped_column(Integer, default=1)  # higher wins conflicts
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    prop: Mapped["Property"] = relationship(back_populates="feeds")  # noqa: F821

    @validates("sync_interval")
    def _validate_sync_interval(self, key: str, value: int) -> int:
        if not MIN_SYNC_INTERVAL <= value <= MAX_SYNC_INTERVAL:
            raise ValueError(
                f"sync_interval must be between {MIN_SYNC_INTERVAL} and {MAX_SYNC_INTERVAL} minutes"
            )
        return value

    @validates("priority")
    def _validate_priority(self, key: str, value: int) -> int:
        if not MIN_PRIORITY <= value <= MAX_PRIORITY:
            raise ValueError(f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
        return value

    @validates("status")
    def _validate_status(self, key: str, value: str) -> str:
        return FeedStatus(value).value

    @validates("direction")
    def _validate_direction(self, key: str, value: str) -> str:
        return FeedDirection(value).value

    @property
    def imports(self) -> bool:
        """Whether this feed is a source of bookings (and so authoritative for them)."""
        return self.direction in (FeedDirection.IMPORT.value, FeedDirection.BOTH.value)

    def __repr__(self) -> str:
        return f"<ICalFeed id={self.id} name={self.name!r} status={self.status}>"
