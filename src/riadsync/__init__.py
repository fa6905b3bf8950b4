"""RiadSync: iCal feed synchronization for riads and small hotels."""

__version__ = "0.1.0"
