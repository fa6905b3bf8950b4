"""Tests for overlap detection, the priority policy and conflict resolution."""

from datetime import datetime, timezone

import pytest

from riadsync.errors import ConflictAlreadyResolved
from riadsync.events import EventType
from riadsync.models.conflict import ICalConflict, Resolution
from riadsync.models.feed import ICalFeed
from riadsync.modules.calendar_sync.conflicts import ConflictResolver, choose_resolution, overlaps
from riadsync.modules.calendar_sync.stores import SqlBookingStore, SqlConflictStore

from tests.conftest import FEED_URL
from tests.fake_fetcher import vcalendar, vevent

RESOLVED_AT = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def feed(priority: int, last_sync: datetime | None = None) -> ICalFeed:
    return ICalFeed(name="feed", url="https://example.com/cal.ics", priority=priority, last_sync=last_sync)


@pytest.fixture
def resolver(db_session, event_bus) -> ConflictResolver:
    return ConflictResolver(
        SqlBookingStore(db_session),
        SqlConflictStore(db_session),
        bus=event_bus,
        clock=lambda: RESOLVED_AT,
    )


@pytest.fixture
def conflict(sync_engine, fetcher, sample_feed, direct_booking) -> ICalConflict:
    fetcher.bodies[FEED_URL] = vcalendar(vevent("clash-1", "20260312", "20260315", "Reserved - Omar K"))
    return sync_engine.sync(sample_feed).conflicts[0]


# --- overlaps ---


def test_overlapping_ranges():
    assert overlaps(utc(2026, 1, 1), utc(2026, 1, 5), utc(2026, 1, 4), utc(2026, 1, 8))
    assert overlaps(utc(2026, 1, 1), utc(2026, 1, 10), utc(2026, 1, 3), utc(2026, 1, 4))


def test_touching_ranges_do_not_overlap():
    assert not overlaps(utc(2026, 1, 1), utc(2026, 1, 5), utc(2026, 1, 5), utc(2026, 1, 8))
    assert not overlaps(utc(2026, 1, 5), utc(2026, 1, 8), utc(2026, 1, 1), utc(2026, 1, 5))


def test_disjoint_ranges():
    assert not overlaps(utc(2026, 1, 1), utc(2026, 1, 2), utc(2026, 2, 1), utc(2026, 2, 2))


# --- choose_resolution ---


def test_higher_priority_incoming_wins():
    assert choose_resolution(feed(3), feed(8)) is Resolution.USE_INCOMING


def test_lower_priority_incoming_loses():
    assert choose_resolution(feed(8), feed(3)) is Resolution.KEEP_EXISTING


def test_direct_booking_beats_feeds_by_default():
    assert choose_resolution(None, feed(10)) is Resolution.KEEP_EXISTING
    assert choose_resolution(None, feed(9)) is Resolution.KEEP_EXISTING


def test_local_priority_is_configurable():
    assert choose_resolution(None, feed(5), local_priority=2) is Resolution.USE_INCOMING


def test_tie_goes_to_the_older_feed():
    older, newer = utc(2026, 1, 1), utc(2026, 2, 1)
    assert choose_resolution(feed(5, newer), feed(5, older)) is Resolution.USE_INCOMING
    assert choose_resolution(feed(5, older), feed(5, newer)) is Resolution.KEEP_EXISTING


def test_undecidable_tie_keeps_existing():
    assert choose_resolution(feed(5, utc(2026, 1, 1)), feed(5)) is Resolution.KEEP_EXISTING
    assert choose_resolution(feed(5), feed(5)) is Resolution.KEEP_EXISTING


# --- ConflictResolver ---


def test_keep_existing(db_session, resolver, conflict, direct_booking, event_bus):
    resolved = []
    event_bus.subscribe(EventType.CONFLICT_RESOLVED, resolved.append)

    result = resolver.resolve(conflict, Resolution.KEEP_EXISTING)

    assert result.resolution == "keep_existing"
    assert result.resolved_at == RESOLVED_AT
    assert result.is_resolved
    db_session.refresh(direct_booking)
    assert direct_booking.check_in == utc(2026, 3, 10, 14)
    assert direct_booking.feed_id is None
    assert resolved[0].data["conflict_id"] == conflict.id
    assert resolved[0].data["resolution"] == "keep_existing"


def test_use_incoming_overwrites_booking(db_session, resolver, conflict, direct_booking, sample_feed, event_bus):
    modified = []
    event_bus.subscribe(EventType.BOOKING_MODIFIED, modified.append)

    result = resolver.resolve(conflict, "use_incoming")

    assert result.resolution == "use_incoming"
    db_session.refresh(direct_booking)
    assert direct_booking.check_in == utc(2026, 3, 12)
    assert direct_booking.check_out == utc(2026, 3, 15)
    assert direct_booking.summary == "Reserved - Omar K"
    assert direct_booking.feed_id == sample_feed.id
    assert direct_booking.external_ref == "clash-1"
    assert direct_booking.channel == "ical"
    assert modified[0].data["booking_id"] == direct_booking.id


def test_use_incoming_recreates_missing_booking(db_session, resolver, sample_feed, sample_property, event_bus):
    conflicts = SqlConflictStore(db_session)
    orphan = conflicts.record_conflict(
        feed_id=sample_feed.id,
        property_id=sample_property.id,
        room_id=sample_feed.room_id,
        existing_booking_id=None,
        existing_uid="booking-404",
        existing_start=utc(2026, 8, 1),
        existing_end=utc(2026, 8, 3),
        incoming_uid="air-9",
        incoming_summary="Reserved",
        incoming_start=utc(2026, 8, 2),
        incoming_end=utc(2026, 8, 4),
    )
    created = []
    event_bus.subscribe(EventType.BOOKING_NEW, created.append)

    resolver.resolve(orphan, Resolution.USE_INCOMING)

    booking = SqlBookingStore(db_session).find_booking_by_external_ref(sample_feed.id, "air-9")
    assert booking is not None
    assert booking.check_in == utc(2026, 8, 2)
    assert booking.status == "confirmed"
    assert len(created) == 1


def test_use_incoming_cancels_feeds_own_copy(db_session, resolver, sync_engine, fetcher, sample_feed, direct_booking, event_bus):
    fetcher.bodies[FEED_URL] = vcalendar(vevent("u1", "20260301", "20260303"))
    sync_engine.sync(sample_feed)
    bookings = SqlBookingStore(db_session)
    own_copy = bookings.find_booking_by_external_ref(sample_feed.id, "u1")
    fetcher.bodies[FEED_URL] = vcalendar(vevent("u1", "20260312", "20260315"))
    conflict = sync_engine.sync(sample_feed).conflicts[0]
    cancelled = []
    event_bus.subscribe(EventType.BOOKING_CANCELLED, cancelled.append)

    resolver.resolve(conflict, Resolution.USE_INCOMING)

    db_session.refresh(own_copy)
    assert own_copy.status == "cancelled"
    assert [e.data["booking_id"] for e in cancelled] == [own_copy.id]
    live = bookings.find_booking_by_external_ref(sample_feed.id, "u1")
    assert live.id == direct_booking.id
    assert live.is_active


def test_use_incoming_without_own_copy_cancels_nothing(resolver, conflict, event_bus):
    cancelled = []
    event_bus.subscribe(EventType.BOOKING_CANCELLED, cancelled.append)

    resolver.resolve(conflict, Resolution.USE_INCOMING)

    assert cancelled == []


def test_resolving_twice_the_same_way_is_a_noop(resolver, conflict, event_bus):
    resolved = []
    event_bus.subscribe(EventType.CONFLICT_RESOLVED, resolved.append)

    first = resolver.resolve(conflict, Resolution.KEEP_EXISTING)
    second = resolver.resolve(first, Resolution.KEEP_EXISTING)

    assert second.resolution == "keep_existing"
    assert second.resolved_at == RESOLVED_AT
    assert len(resolved) == 1


def test_resolved_conflict_cannot_change_outcome(resolver, conflict):
    resolver.resolve(conflict, Resolution.KEEP_EXISTING)
    with pytest.raises(ConflictAlreadyResolved):
        resolver.resolve(conflict, Resolution.USE_INCOMING)


def test_manual_keeps_conflict_open(db_session, resolver, conflict, direct_booking, event_bus):
    resolved = []
    event_bus.subscribe(EventType.CONFLICT_RESOLVED, resolved.append)

    result = resolver.resolve(conflict, Resolution.MANUAL)

    assert result.resolution == "manual"
    assert result.resolved_at is None
    assert result.is_pending
    assert resolved == []
    assert SqlConflictStore(db_session).list_conflicts(pending_only=True) == [result]
    db_session.refresh(direct_booking)
    assert direct_booking.check_in == utc(2026, 3, 10, 14)


def test_manual_then_final_resolution(resolver, conflict):
    resolver.resolve(conflict, Resolution.MANUAL)
    result = resolver.resolve(conflict, Resolution.KEEP_EXISTING)

    assert result.resolution == "keep_existing"
    assert result.resolved_at == RESOLVED_AT


def test_resolved_conflicts_leave_pending_list(db_session, resolver, conflict):
    store = SqlConflictStore(db_session)
    resolver.resolve(conflict, Resolution.KEEP_EXISTING)

    assert store.list_conflicts(pending_only=True) == []
    assert len(store.list_conflicts()) == 1
