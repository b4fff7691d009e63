# /src/livetags/sources/memory_source.py
# In-memory SubscriptionSource implementation (async)

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import LiveQuery, SubscriptionSource, sort_records
from ..records.raw import RawRecord, SubscriptionFailure
from ..records.timestamps import Clock, FinalizedTimestamp, PendingTimestamp, utcnow


class MemorySubscriptionSource(SubscriptionSource):
    """In-memory source for testing and development.

    Records are kept per scope key and lost when the process exits.
    A tag added without created_at behaves like a server-assigned
    timestamp: subscribers first see it pending (estimated from the
    local clock), then committed.
    """

    failure_types = (TypeError,)

    def __init__(self, clock: Clock = utcnow):
        super().__init__()
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    async def fetch(self, query: LiveQuery) -> List[RawRecord]:
        """Snapshot a scope, ordered by the query."""
        docs = self._collections.get(query.scope_key, {})
        records = [
            RawRecord(id=record_id, fields=dict(fields))
            for record_id, fields in docs.items()
        ]
        return sort_records(records, query)

    # ========== Writes ==========

    async def add(
        self,
        scope_key: str,
        name: str,
        created_at: Optional[datetime] = None,
        record_id: Optional[str] = None
    ) -> str:
        """Add a tag and notify subscribers of the scope.

        Returns:
            The record id
        """
        record_id = record_id or uuid.uuid4().hex
        collection = self._collections.setdefault(scope_key, {})

        if created_at is None:
            collection[record_id] = {
                "name": name,
                "created_at": PendingTimestamp(local_estimate=self._clock())
            }
            await self.publish(scope_key)
            self._commit(scope_key)
        else:
            collection[record_id] = {
                "name": name,
                "created_at": FinalizedTimestamp(created_at)
            }

        self._logger.info(f"Added record {record_id} to scope {scope_key}")
        await self.publish(scope_key)
        return record_id

    async def put(self, scope_key: str, record_id: str, fields: Dict[str, Any]) -> None:
        """Write raw fields as-is, pending timestamps included."""
        self._collections.setdefault(scope_key, {})[record_id] = dict(fields)
        await self.publish(scope_key)

    async def commit_pending(self, scope_key: str) -> None:
        """Finalize every pending timestamp in a scope with the server clock."""
        self._commit(scope_key)
        await self.publish(scope_key)

    async def rename(self, scope_key: str, record_id: str, name: str) -> bool:
        collection = self._collections.get(scope_key, {})
        if record_id not in collection:
            return False
        collection[record_id]["name"] = name
        await self.publish(scope_key)
        return True

    async def delete(self, scope_key: str, record_id: str) -> bool:
        collection = self._collections.get(scope_key, {})
        if record_id not in collection:
            return False
        del collection[record_id]
        self._logger.info(f"Deleted record {record_id} from scope {scope_key}")
        await self.publish(scope_key)
        return True

    def fail(self, scope_key: str, message: str, code: Optional[str] = None) -> int:
        """End every subscription on a scope with a failure.

        Returns:
            Number of subscriptions that were failed
        """
        failure = SubscriptionFailure(message=message, code=code)
        subs = [
            sub for sub in self._subscriptions.values()
            if sub.query.scope_key == scope_key
        ]
        for sub in subs:
            self._fail(sub, failure)
        return len(subs)

    def _commit(self, scope_key: str) -> None:
        now = self._clock()
        for fields in self._collections.get(scope_key, {}).values():
            for key, value in fields.items():
                if isinstance(value, PendingTimestamp):
                    fields[key] = FinalizedTimestamp(now)

    def clear(self) -> None:
        """Clear all records (for testing)."""
        self._collections.clear()
