"""Database models."""

from riadsync.models.booking import Booking
from riadsync.models.conflict import ICalConflict, Resolution
from riadsync.models.feed import FeedDirection, FeedStatus, ICalFeed
from riadsync.models.property import Property, Room

__all__ = [
    "Booking",
    "FeedDirection",
    "FeedStatus",
    "ICalConflict",
    "ICalFeed",
    "Property",
    "Resolution",
    "Room",
]
