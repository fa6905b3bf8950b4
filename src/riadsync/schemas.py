"""Request and response bodies for the JSON API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from riadsync.models.conflict import Resolution
from riadsync.models.feed import (
    MAX_PRIORITY,
    MAX_SYNC_INTERVAL,
    MIN_PRIORITY,
    MIN_SYNC_INTERVAL,
    FeedDirection,
    FeedStatus,
)
from riadsync.modules.calendar_sync.engine import SyncPhase
from riadsync.modules.ical.codec import EventStatus


class FeedCreate(BaseModel):
    name: str = Field(min_length=3, max_length=200)
    url: str = Field(min_length=1)
    property_id: int
    room_id: int | None = None
    auto_sync: bool = True
    sync_interval: int = Field(default=60, ge=MIN_SYNC_INTERVAL, le=MAX_SYNC_INTERVAL)
    direction: FeedDirection = FeedDirection.IMPORT
    priority: int = Field(default=1, ge=MIN_PRIORITY, le=MAX_PRIORITY)


class FeedUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=3, max_length=200)
    url: str | None = None
    room_id: int | None = None
    auto_sync: bool | None = None
    sync_interval: int | None = Field(default=None, ge=MIN_SYNC_INTERVAL, le=MAX_SYNC_INTERVAL)
    direction: FeedDirection | None = None
    priority: int | None = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)

    # Omit a field to leave it alone; only room_id may be cleared with null.
    @field_validator("name", "url", "auto_sync", "sync_interval", "direction", "priority")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value


class FeedOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    url: str
    property_id: int
    room_id: int | None
    last_sync: datetime | None
    auto_sync: bool
    sync_interval: int
    status: FeedStatus
    error: str | None
    direction: FeedDirection
    priority: int


class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uid: str
    summary: str
    description: str | None = None
    location: str | None = None
    start_date: datetime
    end_date: datetime
    status: EventStatus


class ConflictOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    feed_id: int | None
    property_id: int
    room_id: int | None
    existing_booking_id: int | None
    existing_event: EventOut
    incoming_event: EventOut
    resolution: Resolution | None
    resolved_at: datetime | None


class ResolveRequest(BaseModel):
    resolution: Resolution


class SyncResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    events_processed: int
    events_created: int
    events_updated: int
    events_removed: int
    events_skipped: int
    conflict_count: int
    conflicts: list[ConflictOut]
    resolved_conflicts: list[ConflictOut]
    error: str | None
    phase: SyncPhase


class ExportUrlOut(BaseModel):
    url: str
    token: str
