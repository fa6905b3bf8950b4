"""iCal text <-> event records.

Decoding is deliberately lenient: it only looks inside VEVENT blocks, keeps
the handful of properties the sync needs and substitutes defaults for
anything missing or unreadable. Encoding goes through ``icalendar`` so the
output is folded and escaped per RFC 5545.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from icalendar import Calendar, Event, vText
from icalendar.parser import Contentline, Contentlines

from riadsync.errors import DecodeError
from riadsync.modules.ical.dates import parse_ical_datetime, to_utc

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT = "RiadSync"


class EventStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    TENTATIVE = "TENTATIVE"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: str) -> "EventStatus":
        try:
            return cls(value.strip().upper())
        except ValueError:
            logger.debug("Unknown STATUS %r, treating as CONFIRMED", value)
            return cls.CONFIRMED


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CalendarEvent:
    """One VEVENT as seen during a sync cycle."""

    uid: str = ""
    summary: str = ""
    start_date: datetime = field(default_factory=_now)
    end_date: datetime = field(default_factory=_now)
    description: str | None = None
    location: str | None = None
    status: EventStatus = EventStatus.CONFIRMED
    created_at: datetime = field(default_factory=_now)
    last_modified: datetime = field(default_factory=_now)
    # False when DTSTART or DTEND was missing or unparseable; the dates are placeholders then.
    dates_valid: bool = True

    @property
    def has_valid_range(self) -> bool:
        return self.end_date > self.start_date


@dataclass
class ExportEvent:
    """Input record for :func:`encode`."""

    uid: str
    summary: str
    start_date: datetime
    end_date: datetime
    description: str | None = None
    location: str | None = None
    status: EventStatus = EventStatus.CONFIRMED


_TEXT_FIELDS = {"SUMMARY": "summary", "DESCRIPTION": "description", "LOCATION": "location"}
_DATE_FIELDS = {
    "DTSTART": "start_date",
    "DTEND": "end_date",
    "CREATED": "created_at",
    "LAST-MODIFIED": "last_modified",
}
_REQUIRED_DATES = frozenset({"DTSTART", "DTEND"})


def _split_lines(text: str) -> list[str]:
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    try:
        return [str(line) for line in Contentlines.from_ical(text) if line]
    except ValueError as exc:
        raise DecodeError(f"Could not split iCal payload into content lines: {exc}") from exc


def _apply_property(event: CalendarEvent, line: str) -> str | None:
    """Copy one content line onto ``event``; returns the property name if it was used."""
    if ":" not in line:
        logger.debug("Skipping content line without a value: %r", line)
        return None
    try:
        name, params, value = Contentline(line).parts()
    except ValueError:
        logger.debug("Skipping unparseable content line %r", line)
        return None
    name = name.upper()
    if name == "UID":
        event.uid = value.strip()
    elif name in _TEXT_FIELDS:
        setattr(event, _TEXT_FIELDS[name], str(vText.from_ical(value)))
    elif name in _DATE_FIELDS:
        try:
            moment = parse_ical_datetime(value, params.get("TZID"), strict=True)
        except ValueError as exc:
            logger.warning("%s of event %r: %s", name, event.uid, exc)
            return None
        setattr(event, _DATE_FIELDS[name], moment)
    elif name == "STATUS":
        event.status = EventStatus.parse(value)
    else:
        return None
    return name


def decode(text: str) -> list[CalendarEvent]:
    """Extract VEVENT records from iCal text, in source order.

    Raises DecodeError only when a non-empty payload is not iCalendar text
    at all. Events with missing fields come back with defaults; dropping
    them (e.g. an empty ``uid``) is the caller's call.
    """
    if not text or not text.strip():
        return []
    lines = _split_lines(text)
    markers = {line.strip().upper() for line in lines}
    if "BEGIN:VCALENDAR" not in markers and "BEGIN:VEVENT" not in markers:
        raise DecodeError("Payload is not an iCalendar document")

    events: list[CalendarEvent] = []
    current: CalendarEvent | None = None
    dated: set[str] = set()
    for line in lines:
        marker = line.strip().upper()
        if marker == "BEGIN:VEVENT":
            if current is not None:
                logger.warning("VEVENT %r was never closed, discarding it", current.uid)
            current = CalendarEvent()
            dated = set()
        elif marker == "END:VEVENT":
            if current is not None:
                current.dates_valid = _REQUIRED_DATES <= dated
                events.append(current)
            current = None
        elif current is not None:
            applied = _apply_property(current, line)
            if applied in _REQUIRED_DATES:
                dated.add(applied)
    if current is not None:
        logger.warning("Payload ended inside VEVENT %r, discarding it", current.uid)
    return events


def encode(
    events: Iterable[ExportEvent],
    calendar_name: str,
    product: str = DEFAULT_PRODUCT,
    now: datetime | None = None,
) -> str:
    """Serialize records into a VCALENDAR document joined with CRLF."""
    stamp = to_utc(now or _now())
    cal = Calendar()
    cal.add("version", "2.0")
    cal.add("prodid", f"-//{product}//{calendar_name}//EN")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    for record in events:
        vevent = Event()
        vevent.add("uid", record.uid)
        vevent.add("dtstamp", stamp)
        vevent.add("dtstart", to_utc(record.start_date))
        vevent.add("dtend", to_utc(record.end_date))
        vevent.add("summary", record.summary)
        if record.description:
            vevent.add("description", record.description)
        if record.location:
            vevent.add("location", record.location)
        vevent.add("status", EventStatus(record.status).value)
        cal.add_component(vevent)
    return cal.to_ical().decode("utf-8")
