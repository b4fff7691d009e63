# /src/livetags/records/types.py
# Enumerations shared by sources and projections

from enum import Enum


class SortDirection(str, Enum):
    """Ordering direction of a live query."""
    ASCENDING = "asc"
    DESCENDING = "desc"


class ServerTimestamps(str, Enum):
    """How a server-pending timestamp is read from a RawRecord.

    A timestamp written as "server assigns" stays pending until the
    server commits it. Readers pick how to see it in the meantime.
    """
    NONE = "none"          # pending reads as None
    ESTIMATE = "estimate"  # pending reads as the local clock estimate
    PREVIOUS = "previous"  # pending reads as the last finalized value
