# /src/livetags/records/timestamps.py
# Two-phase timestamps: pending until the server finalizes them

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Callable, Optional, Union

DISPLAY_FORMAT = "%Y-%m-%d %H:%M"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class PendingTimestamp:
    """A server-assigned timestamp the server has not committed yet.

    local_estimate is the client time of the write, when known.
    previous is the last finalized value of the field, if it had one.
    """
    local_estimate: Optional[datetime] = None
    previous: Optional[datetime] = None

    def estimate(self, clock: Clock = utcnow) -> datetime:
        if self.local_estimate is not None:
            return as_utc(self.local_estimate)
        return as_utc(clock())


@dataclass(frozen=True)
class FinalizedTimestamp:
    """A committed, exact instant."""
    instant: datetime

    def to_datetime(self) -> datetime:
        return as_utc(self.instant)


Timestamp = Union[PendingTimestamp, FinalizedTimestamp]


def format_instant(
    instant: datetime,
    fmt: str = DISPLAY_FORMAT,
    tz: tzinfo = timezone.utc
) -> str:
    """Render an instant for display. Seconds and below are dropped."""
    return as_utc(instant).astimezone(tz).strftime(fmt)
