# Wire-level record primitives

from .types import SortDirection, ServerTimestamps
from .timestamps import (
    DISPLAY_FORMAT,
    FinalizedTimestamp,
    PendingTimestamp,
    Timestamp,
    format_instant,
)
from .raw import RawRecord, SubscriptionFailure

__all__ = [
    "SortDirection",
    "ServerTimestamps",
    "DISPLAY_FORMAT",
    "FinalizedTimestamp",
    "PendingTimestamp",
    "Timestamp",
    "format_instant",
    "RawRecord",
    "SubscriptionFailure",
]
