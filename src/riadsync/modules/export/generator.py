"""Outbound iCal feeds built from stored bookings."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from riadsync.config import section
from riadsync.database import utcnow
from riadsync.models.booking import Booking
from riadsync.modules.calendar_sync.stores import BookingStore, PropertyStore
from riadsync.modules.export.token import encode_export_token
from riadsync.modules.ical.codec import EventStatus, ExportEvent, encode

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 90


def _product() -> str:
    return section("export").get("product_name", "RiadSync")


def _uid_domain() -> str:
    return section("export").get("uid_domain", "riadsync.com")


def export_url(property_id: int, room_id: int | None = None) -> str:
    """Public URL an OTA can poll for this property or room."""
    base_url = section("export").get("base_url", "https://app.riadsync.com").rstrip("/")
    return f"{base_url}/api/ical/{encode_export_token(property_id, room_id)}.ics"


def fallback_calendar(now: datetime | None = None) -> str:
    """A one-event calendar served when the real one cannot be built.

    OTA platforms disable feeds that error out, so they get a tentative
    placeholder instead.
    """
    now = now or utcnow()
    placeholder = ExportEvent(
        uid=f"error-notification@{_uid_domain()}",
        summary="Error - Contact Support",
        description="There was an error generating this calendar feed. Please contact support.",
        start_date=now,
        end_date=now + timedelta(hours=1),
        status=EventStatus.TENTATIVE,
    )
    return encode([placeholder], "NONSGML Calendar", product=_product(), now=now)


class ExportGenerator:
    def __init__(
        self,
        bookings: BookingStore,
        properties: PropertyStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._bookings = bookings
        self._properties = properties
        self._clock = clock
        self.product = _product()
        self.uid_domain = _uid_domain()
        self._window_setting = section("export").get("window_days", DEFAULT_WINDOW_DAYS)

    @property
    def window_days(self) -> int:
        """Forward export window; a bad setting raises here, inside ``generate``."""
        return int(self._window_setting)

    def booking_uid(self, booking: Booking) -> str:
        return f"booking-{booking.id}@{self.uid_domain}"

    def generate(
        self,
        property_id: int,
        room_id: int | None = None,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> str:
        """Encode bookings overlapping the window; never raises."""
        try:
            return self._build(property_id, room_id, period_start, period_end)
        except Exception:
            logger.exception(
                "iCal export failed for property %s room %s, serving fallback",
                property_id, room_id,
            )
            return fallback_calendar(self._clock())

    def _build(
        self,
        property_id: int,
        room_id: int | None,
        period_start: datetime | None,
        period_end: datetime | None,
    ) -> str:
        start = period_start or self._clock()
        end = period_end or start + timedelta(days=self.window_days)

        prop = self._properties.get_property(property_id)
        if prop is None:
            raise LookupError(f"Property {property_id} not found")
        room = self._properties.get_room(room_id) if room_id is not None else None
        if room_id is not None and (room is None or room.property_id != property_id):
            raise LookupError(f"Room {room_id} not found in property {property_id}")

        summary = f"Room {room.name} Booked" if room is not None else f"{prop.name} Booked"
        calendar_name = f"{prop.name} - {room.name}" if room is not None else prop.name
        records = [
            ExportEvent(
                uid=self.booking_uid(b),
                summary=summary,
                start_date=b.check_in,
                end_date=b.check_out,
            )
            for b in self._bookings.list_bookings(property_id, room_id, start, end)
        ]
        logger.info("Exporting %d booking(s) for %s", len(records), calendar_name)
        return encode(records, calendar_name, product=self.product, now=self._clock())
