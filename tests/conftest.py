"""Shared test fixtures."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Set test environment before importing app modules
os.environ["DATABASE_URL"] = "sqlite://"  # In-memory DB for tests

from riadsync.database import Base
from riadsync.events import EventBus
from riadsync.models.booking import Booking
from riadsync.models.feed import ICalFeed
from riadsync.models.property import Property, Room
from riadsync.modules.calendar_sync.engine import SyncEngine
from riadsync.modules.calendar_sync.stores import SqlBookingStore, SqlConflictStore, SqlFeedStore

# Import all models to register them
import riadsync.models.conflict  # noqa: F401

from tests.fake_fetcher import FakeFetcher

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FEED_URL = "https://www.airbnb.com/calendar/ical/123.ics"
BOOKING_COM_URL = "https://admin.booking.com/hotel/hoteladmin/ical.html?t=abc"


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_engine("sqlite://", echo=False)
    Base.metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    session = session_factory()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def sample_property(db_session: Session) -> Property:
    prop = Property(name="Riad Dar Zitoun", address="12 Derb Zitoun, Marrakech")
    db_session.add(prop)
    db_session.commit()
    return prop


@pytest.fixture
def sample_room(db_session: Session, sample_property: Property) -> Room:
    room = Room(property_id=sample_property.id, name="Majorelle Suite")
    db_session.add(room)
    db_session.commit()
    return room


@pytest.fixture
def sample_feed(db_session: Session, sample_property: Property, sample_room: Room) -> ICalFeed:
    feed = ICalFeed(
        name="Airbnb - Majorelle",
        url=FEED_URL,
        property_id=sample_property.id,
        room_id=sample_room.id,
        direction="import",
        priority=8,
        auto_sync=True,
        sync_interval=60,
    )
    db_session.add(feed)
    db_session.commit()
    return feed


@pytest.fixture
def second_feed(db_session: Session, sample_property: Property, sample_room: Room) -> ICalFeed:
    feed = ICalFeed(
        name="Booking.com - Majorelle",
        url=BOOKING_COM_URL,
        property_id=sample_property.id,
        room_id=sample_room.id,
        direction="import",
        priority=3,
        auto_sync=True,
        sync_interval=60,
    )
    db_session.add(feed)
    db_session.commit()
    return feed


@pytest.fixture
def direct_booking(db_session: Session, sample_property: Property, sample_room: Room) -> Booking:
    """A booking taken at the front desk, not owned by any feed."""
    booking = Booking(
        property_id=sample_property.id,
        room_id=sample_room.id,
        guest_name="Amina B",
        channel="direct",
        check_in=utc(2026, 3, 10, 14),
        check_out=utc(2026, 3, 14, 11),
        status="confirmed",
        summary="Amina B",
    )
    db_session.add(booking)
    db_session.commit()
    return booking


@pytest.fixture
def event_bus():
    """Create a fresh event bus for each test."""
    return EventBus()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def sync_engine(db_session: Session, fetcher: FakeFetcher, event_bus: EventBus) -> SyncEngine:
    return SyncEngine(
        fetcher,
        SqlBookingStore(db_session),
        SqlFeedStore(db_session),
        SqlConflictStore(db_session),
        bus=event_bus,
    )


@pytest.fixture
def sample_ics() -> str:
    """Load sample iCal data."""
    return (FIXTURES_DIR / "sample.ics").read_text()
