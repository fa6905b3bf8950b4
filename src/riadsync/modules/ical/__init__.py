from riadsync.modules.ical.codec import CalendarEvent, EventStatus, ExportEvent, decode, encode
from riadsync.modules.ical.dates import parse_ical_datetime

__all__ = ["CalendarEvent", "EventStatus", "ExportEvent", "decode", "encode", "parse_ical_datetime"]
