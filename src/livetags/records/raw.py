# /src/livetags/records/raw.py
# RawRecord - the wire-level item emitted by a SubscriptionSource

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .timestamps import (
    Clock,
    FinalizedTimestamp,
    PendingTimestamp,
    utcnow,
)
from .types import ServerTimestamps


@dataclass(frozen=True)
class RawRecord:
    """One item of a live snapshot, as the source stores it.

    Field values are plain JSON-like values, except timestamps which are
    PendingTimestamp or FinalizedTimestamp. Reading a field resolves
    timestamps to datetimes according to a ServerTimestamps behavior.
    """
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(
        self,
        name: str,
        server_timestamps: ServerTimestamps = ServerTimestamps.NONE,
        clock: Clock = utcnow
    ) -> Any:
        """Read a single field. Missing fields read as None."""
        return _resolve(self.fields.get(name), server_timestamps, clock)

    def data(
        self,
        server_timestamps: ServerTimestamps = ServerTimestamps.NONE,
        clock: Clock = utcnow
    ) -> Dict[str, Any]:
        """Read all fields with timestamps resolved."""
        return {
            key: _resolve(value, server_timestamps, clock)
            for key, value in self.fields.items()
        }

    @property
    def has_pending_writes(self) -> bool:
        return any(isinstance(v, PendingTimestamp) for v in self.fields.values())


def _resolve(value: Any, behavior: ServerTimestamps, clock: Clock) -> Any:
    if isinstance(value, FinalizedTimestamp):
        return value.to_datetime()
    if isinstance(value, PendingTimestamp):
        if behavior == ServerTimestamps.ESTIMATE:
            return value.estimate(clock)
        if behavior == ServerTimestamps.PREVIOUS:
            return value.previous
        return None
    return value


@dataclass(frozen=True)
class SubscriptionFailure:
    """Terminal error reported by a source for one subscription."""
    message: str
    code: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "SubscriptionFailure":
        code = getattr(exc, "code", None)
        return cls(
            message=str(exc) or type(exc).__name__,
            code=str(code) if code is not None else None
        )
