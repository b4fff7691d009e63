# /src/livetags/sources/json_source.py
# JSON Lines file-based SubscriptionSource implementation (async with aiofiles)

import asyncio
import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os

from .base import LiveQuery, SubscriptionSource, sort_records
from ..records.raw import RawRecord, SubscriptionFailure
from ..records.timestamps import FinalizedTimestamp, PendingTimestamp, as_utc, utcnow


class JSONSubscriptionSource(SubscriptionSource):
    """File-backed source storing one record per JSON line.

    Each line holds {"id", "scope_key", "name", "created_at"}, with
    created_at an ISO-8601 string or null while pending. Writes made
    through this source notify subscribers directly; writes made by
    other processes are picked up by polling the file's mtime.
    """

    failure_types = (OSError, ValueError, TypeError, KeyError)

    def __init__(
        self,
        storage_dir: str = "./livetags_data",
        collection: str = "tags",
        poll_interval: float = 1.0
    ):
        super().__init__()
        self._storage_dir = Path(storage_dir)
        self._records_file = self._storage_dir / f"{collection}.jsonl"
        self._poll_interval = poll_interval
        self._last_mtime: Optional[float] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._logger = logging.getLogger(__name__)

    @property
    def records_file(self) -> Path:
        return self._records_file

    async def initialize(self) -> None:
        """Create the storage file and start polling it."""
        await aiofiles.os.makedirs(self._storage_dir, exist_ok=True)
        if not await aiofiles.os.path.exists(self._records_file):
            async with aiofiles.open(self._records_file, "w") as f:
                pass  # Create empty file
        self._last_mtime = await self._mtime()
        if self._poll_interval > 0:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll())

    async def close(self) -> None:
        """Stop polling and drop subscriptions."""
        if self._poll_task:
            self._poll_task.cancel()
            self._poll_task = None
        await super().close()

    async def fetch(self, query: LiveQuery) -> List[RawRecord]:
        rows = await self._load_rows()
        records = []
        for row in rows:
            if not isinstance(row, dict) or "id" not in row:
                self._logger.warning(f"Skipping row without an id in {self._records_file}")
                continue
            if row.get("scope_key") == query.scope_key:
                records.append(self._row_to_record(row))
        return sort_records(records, query)

    # ========== Writes ==========

    async def add(
        self,
        scope_key: str,
        name: str,
        created_at: Optional[datetime] = None,
        record_id: Optional[str] = None
    ) -> str:
        """Append a tag. Without created_at the write time is used."""
        record_id = record_id or uuid.uuid4().hex
        row = {
            "id": record_id,
            "scope_key": scope_key,
            "name": name,
            "created_at": as_utc(created_at or utcnow()).isoformat()
        }
        async with aiofiles.open(self._records_file, "a") as f:
            await f.write(json.dumps(row) + "\n")
        self._logger.info(f"Added record {record_id} to scope {scope_key}")
        await self._after_write(scope_key)
        return record_id

    async def rename(self, scope_key: str, record_id: str, name: str) -> bool:
        rows = await self._load_rows()
        found = False
        for row in rows:
            if row.get("id") == record_id and row.get("scope_key") == scope_key:
                row["name"] = name
                found = True
        if found:
            await self._write_rows(rows)
            await self._after_write(scope_key)
        return found

    async def delete(self, scope_key: str, record_id: str) -> bool:
        rows = await self._load_rows()
        kept = [
            row for row in rows
            if not (row.get("id") == record_id and row.get("scope_key") == scope_key)
        ]
        if len(kept) == len(rows):
            return False
        await self._write_rows(kept)
        self._logger.info(f"Deleted record {record_id} from scope {scope_key}")
        await self._after_write(scope_key)
        return True

    # ========== File access ==========

    async def _load_rows(self) -> List[Dict[str, Any]]:
        rows = []
        try:
            async with aiofiles.open(self._records_file, "r") as f:
                async for line in f:
                    line = line.strip()
                    if line:
                        rows.append(json.loads(line))
        except FileNotFoundError:
            pass
        return rows

    async def _write_rows(self, rows: List[Dict[str, Any]]) -> None:
        async with aiofiles.open(self._records_file, "w") as f:
            for row in rows:
                await f.write(json.dumps(row) + "\n")

    async def _after_write(self, scope_key: str) -> None:
        self._last_mtime = await self._mtime()
        await self.publish(scope_key)

    async def _mtime(self) -> Optional[float]:
        try:
            stat = await aiofiles.os.stat(self._records_file)
        except FileNotFoundError:
            return None
        return stat.st_mtime

    async def _poll(self) -> None:
        """Re-deliver snapshots whenever the file changes on disk."""
        while True:
            await asyncio.sleep(self._poll_interval)
            try:
                mtime = await self._mtime()
            except OSError as e:
                failure = SubscriptionFailure.from_exception(e)
                for sub in list(self._subscriptions.values()):
                    self._fail(sub, failure)
                continue
            if mtime != self._last_mtime:
                self._last_mtime = mtime
                self._logger.debug(f"{self._records_file} changed, publishing")
                await self.publish_all()

    def _row_to_record(self, row: Dict[str, Any]) -> RawRecord:
        fields = {
            key: value for key, value in row.items()
            if key not in ("id", "scope_key")
        }
        if "created_at" in row:
            fields["created_at"] = _parse_timestamp(row["created_at"])
        return RawRecord(id=row["id"], fields=fields)


def _parse_timestamp(value: Any) -> Any:
    """null is pending; unparseable values pass through untouched."""
    if value is None:
        return PendingTimestamp()
    try:
        return FinalizedTimestamp(datetime.fromisoformat(value))
    except (TypeError, ValueError):
        return value
