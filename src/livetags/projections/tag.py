# /src/livetags/projections/tag.py
# TagProjection - maps a snapshot of raw records to Tags

import logging
from datetime import datetime, timezone, tzinfo
from typing import List

from .base import Projection
from ..records.raw import RawRecord
from ..records.timestamps import DISPLAY_FORMAT, Clock, format_instant, utcnow
from ..records.types import ServerTimestamps
from ..tag import Tag


class MalformedRecordError(ValueError):
    """A raw record lacks a field the Tag mapping needs."""

    def __init__(self, record_id: str, field_name: str):
        super().__init__(f"Record {record_id} has no usable '{field_name}'")
        self.record_id = record_id
        self.field_name = field_name


class TagProjection(Projection[List[Tag]]):
    """Project a snapshot into a list of Tags, keeping source order.

    Pending server timestamps are read through their local estimate so a
    freshly written tag shows up right away. Records that cannot be
    mapped are logged and skipped; the rest of the snapshot still lands.
    """

    def __init__(
        self,
        date_format: str = DISPLAY_FORMAT,
        display_tz: tzinfo = timezone.utc,
        clock: Clock = utcnow
    ):
        self.date_format = date_format
        self.display_tz = display_tz
        self.clock = clock
        self._logger = logging.getLogger(__name__)

    def project(self, records: List[RawRecord]) -> List[Tag]:
        tags = []
        for record in records:
            try:
                tags.append(self.to_tag(record))
            except MalformedRecordError as e:
                self._logger.warning(f"Skipping malformed record: {e}")
        return tags

    def to_tag(self, record: RawRecord) -> Tag:
        """Map a single record. Raises MalformedRecordError."""
        name = record.get("name")
        if not isinstance(name, str):
            raise MalformedRecordError(record.id, "name")

        created_at = record.get(
            "created_at",
            server_timestamps=ServerTimestamps.ESTIMATE,
            clock=self.clock
        )
        if not isinstance(created_at, datetime):
            raise MalformedRecordError(record.id, "created_at")

        return Tag(
            id=record.id,
            name=name,
            created_at=format_instant(created_at, self.date_format, self.display_tz)
        )
