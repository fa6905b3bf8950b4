"""iCal date-time token normalization.

Tokens come in three shapes: ``YYYYMMDDTHHMMSSZ`` (UTC), ``YYYYMMDDTHHMMSS``
(floating, optionally with a TZID parameter) and ``YYYYMMDD`` (all-day).
Every result is an aware UTC datetime.

Known limitation: TZID handling covers a handful of zones with a
month-window DST test, not real transition dates. A token near a DST switch
can be off by an hour. Unknown TZIDs fall back to the host zone.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

logger = logging.getLogger(__name__)

# Standard offset (hours east of UTC) and DST region per supported zone.
ZONE_RULES: dict[str, tuple[int, str | None]] = {
    "America/New_York": (-5, "US"),
    "America/Los_Angeles": (-8, "US"),
    "Europe/London": (0, "UK"),
    "Europe/Paris": (1, "EU"),
    "Asia/Tokyo": (9, None),
    "Australia/Sydney": (10, "AU"),
}


def is_dst(moment: date, region: str) -> bool:
    """Approximate DST test by calendar month."""
    month = moment.month
    if region == "US":
        return 4 <= month <= 11
    if region in ("EU", "UK"):
        return 4 <= month <= 10
    if region == "AU":
        # southern hemisphere
        return month <= 4 or month >= 11
    return False


def zone_offset(tz_name: str, moment: date) -> timedelta:
    """Offset from UTC for a supported zone; unsupported zones count as UTC."""
    rule = ZONE_RULES.get(tz_name)
    if rule is None:
        return timedelta(0)
    hours, region = rule
    if region and is_dst(moment, region):
        hours += 1
    return timedelta(hours=hours)


def _fields(token: str) -> tuple[int, int, int, int, int, int]:
    year, month, day = int(token[0:4]), int(token[4:6]), int(token[6:8])
    if len(token) == 8:
        return year, month, day, 0, 0, 0
    if token[8] != "T":
        raise ValueError(f"missing 'T' separator in {token!r}")
    return year, month, day, int(token[9:11]), int(token[11:13]), int(token[13:15])


def parse_ical_datetime(token: str, tzid: str | None = None, strict: bool = False) -> datetime:
    """Convert an iCal DATE or DATE-TIME token into an aware UTC datetime.

    Malformed tokens return the current instant instead of raising, so one
    bad field never sinks a whole event. Callers must not treat that value as
    meaningful; pass ``strict=True`` to get the ValueError instead.
    """
    token = (token or "").strip()
    utc = token.endswith("Z")
    digits = token[:-1] if utc else token
    try:
        if len(digits) not in (8, 15) or (utc and len(digits) != 15):
            raise ValueError(f"unexpected length {len(token)}")
        wall = datetime(*_fields(digits))
    except ValueError as exc:
        if strict:
            raise ValueError(f"Unparseable iCal date {token!r}: {exc}") from exc
        logger.warning("Unparseable iCal date %r (%s), using current time", token, exc)
        return datetime.now(timezone.utc)

    if utc or len(digits) == 8:
        return wall.replace(tzinfo=timezone.utc)
    if tzid and tzid in ZONE_RULES:
        offset = zone_offset(tzid, wall)
        return (wall - offset).replace(tzinfo=timezone.utc)
    if tzid:
        logger.debug("TZID %s not supported, treating %s as host local time", tzid, token)
    # Floating time: host default zone.
    return wall.astimezone().astimezone(timezone.utc)


def to_utc(moment: datetime) -> datetime:
    """Normalize any datetime to aware UTC (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
