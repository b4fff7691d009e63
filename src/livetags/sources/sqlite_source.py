# /src/livetags/sources/sqlite_source.py
# SQLite-based SubscriptionSource implementation (async with aiosqlite)

import logging
import uuid
from datetime import datetime
from typing import List, Optional

import aiosqlite

from .base import LiveQuery, SubscriptionSource
from ..records.raw import RawRecord
from ..records.timestamps import FinalizedTimestamp, PendingTimestamp, as_utc, utcnow
from ..records.types import SortDirection

ORDERABLE_FIELDS = ("created_at", "name", "id")


class SQLiteSubscriptionSource(SubscriptionSource):
    """SQLite-based source with ordering done by the database.

    Uses one table per collection with an index on
    (scope_key, created_at). Timestamps are stored as UTC ISO-8601
    text, so text order equals chronological order. A NULL created_at
    is read back as pending.

    Only writes made through this source notify subscribers.
    """

    failure_types = (aiosqlite.Error, ValueError)

    def __init__(self, db_path: str = "./livetags.db", collection: str = "tags"):
        super().__init__()
        if not collection.isidentifier():
            raise ValueError(f"Invalid collection name: {collection!r}")
        self._db_path = db_path
        self._table = collection
        self._db: Optional[aiosqlite.Connection] = None
        self._logger = logging.getLogger(__name__)

    async def initialize(self) -> None:
        """Create database and tables if they don't exist."""
        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute(f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                id TEXT PRIMARY KEY,
                scope_key TEXT NOT NULL,
                name TEXT,
                created_at TEXT
            )
        """)
        await self._db.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{self._table}_scope_created "
            f"ON {self._table}(scope_key, created_at)"
        )
        await self._db.commit()

    async def close(self) -> None:
        """Drop subscriptions and close the database connection."""
        await super().close()
        if self._db:
            await self._db.close()
            self._db = None

    async def fetch(self, query: LiveQuery) -> List[RawRecord]:
        db = self._require_db()
        if query.order_by not in ORDERABLE_FIELDS:
            raise ValueError(f"Cannot order by unknown field: {query.order_by}")
        direction = "DESC" if query.direction == SortDirection.DESCENDING else "ASC"

        cursor = await db.execute(
            f"SELECT id, name, created_at FROM {self._table} "
            f"WHERE scope_key = ? ORDER BY {query.order_by} {direction}, id",
            (query.scope_key,)
        )
        rows = await cursor.fetchall()
        return [self._row_to_record(row) for row in rows]

    # ========== Writes ==========

    async def add(
        self,
        scope_key: str,
        name: str,
        created_at: Optional[datetime] = None,
        record_id: Optional[str] = None
    ) -> str:
        """Insert a tag. Without created_at the commit time is used."""
        record_id = record_id or uuid.uuid4().hex
        db = self._require_db()
        await db.execute(
            f"INSERT INTO {self._table} (id, scope_key, name, created_at) "
            "VALUES (?, ?, ?, ?)",
            (record_id, scope_key, name, as_utc(created_at or utcnow()).isoformat())
        )
        await db.commit()
        self._logger.info(f"Added record {record_id} to scope {scope_key}")
        await self.publish(scope_key)
        return record_id

    async def rename(self, scope_key: str, record_id: str, name: str) -> bool:
        db = self._require_db()
        cursor = await db.execute(
            f"UPDATE {self._table} SET name = ? WHERE id = ? AND scope_key = ?",
            (name, record_id, scope_key)
        )
        await db.commit()
        if cursor.rowcount > 0:
            await self.publish(scope_key)
            return True
        return False

    async def delete(self, scope_key: str, record_id: str) -> bool:
        db = self._require_db()
        cursor = await db.execute(
            f"DELETE FROM {self._table} WHERE id = ? AND scope_key = ?",
            (record_id, scope_key)
        )
        await db.commit()
        if cursor.rowcount > 0:
            self._logger.info(f"Deleted record {record_id} from scope {scope_key}")
            await self.publish(scope_key)
            return True
        return False

    def _row_to_record(self, row) -> RawRecord:
        """Convert a database row to a RawRecord.

        A created_at that is not ISO-8601 text is kept as stored.
        """
        record_id, name, created_at = row
        if created_at is None:
            timestamp = PendingTimestamp()
        else:
            try:
                timestamp = FinalizedTimestamp(datetime.fromisoformat(created_at))
            except (TypeError, ValueError):
                timestamp = created_at
        return RawRecord(id=record_id, fields={"name": name, "created_at": timestamp})

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise ValueError("SQLiteSubscriptionSource is not initialized")
        return self._db
