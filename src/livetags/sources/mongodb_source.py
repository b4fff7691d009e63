# /src/livetags/sources/mongodb_source.py
# MongoDB-based SubscriptionSource implementation (async with Motor)

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

try:
    from motor.motor_asyncio import AsyncIOMotorClient
    from pymongo import ASCENDING, DESCENDING
    from pymongo.errors import PyMongoError
    HAS_MOTOR = True
except ImportError:
    HAS_MOTOR = False

from .base import LiveQuery, Subscription, SubscriptionSource
from ..records.raw import RawRecord, SubscriptionFailure
from ..records.timestamps import FinalizedTimestamp, PendingTimestamp
from ..records.types import SortDirection


class MongoDBSubscriptionSource(SubscriptionSource):
    """MongoDB-based source using Motor (async driver).

    Each subscription watches the collection through a change stream
    and refetches its scope on every change. Change streams need a
    replica set; against a standalone server pass watch_changes=False
    and only writes made through this source will notify.

    Tags added without created_at get the server's $currentDate.

    Requires: motor (pip install motor)
    """

    def __init__(
        self,
        connection_string: str = "mongodb://localhost:27017",
        database_name: str = "livetags",
        collection_name: str = "tags",
        watch_changes: bool = True,
        client: Optional["AsyncIOMotorClient"] = None
    ):
        if not HAS_MOTOR:
            raise ImportError("motor is required for MongoDBSubscriptionSource. Install with: pip install motor")
        super().__init__()
        self.failure_types = (PyMongoError, ValueError)
        self._connection_string = connection_string
        self._database_name = database_name
        self._collection_name = collection_name
        self._watch_changes = watch_changes
        self._client = client
        self._owns_client = client is None
        self._collection = None
        self._logger = logging.getLogger(__name__)

    async def initialize(self) -> None:
        """Connect to MongoDB and create indexes."""
        if self._client is None:
            self._client = AsyncIOMotorClient(self._connection_string)
        self._collection = self._client[self._database_name][self._collection_name]
        await self._collection.create_index([("scope_key", ASCENDING), ("created_at", DESCENDING)])

    async def close(self) -> None:
        """Drop subscriptions and close the MongoDB connection."""
        await super().close()
        if self._client and self._owns_client:
            self._client.close()
            self._client = None
        self._collection = None

    async def fetch(self, query: LiveQuery) -> List[RawRecord]:
        direction = DESCENDING if query.direction == SortDirection.DESCENDING else ASCENDING
        cursor = self._require_collection().find(
            {"scope_key": query.scope_key}
        ).sort(query.order_by, direction)
        docs = await cursor.to_list(length=None)
        return [self._doc_to_record(doc) for doc in docs]

    def _start_watching(self, sub: Subscription) -> None:
        if self._watch_changes:
            self._spawn(sub, self._watch(sub))

    async def _watch(self, sub: Subscription) -> None:
        """Refetch the subscription's scope on every matching change.

        Stops, closing the stream, once the subscription is dropped;
        that may happen inside the delivery this task is running.
        """
        # Deletes carry no document, so every delete triggers a refetch
        pipeline = [{"$match": {"$or": [
            {"fullDocument.scope_key": sub.query.scope_key},
            {"operationType": "delete"},
        ]}}]
        try:
            collection = self._require_collection()
            async with collection.watch(pipeline, full_document="updateLookup") as stream:
                if not sub.active:
                    return
                async for _change in stream:
                    await self._deliver(sub)
                    if not sub.active:
                        break
        except (PyMongoError, ValueError) as e:
            self._fail(sub, SubscriptionFailure.from_exception(e))
        self._logger.debug(f"Change stream closed for {sub.subscription_id}")

    # ========== Writes ==========

    async def add(
        self,
        scope_key: str,
        name: str,
        created_at: Optional[datetime] = None,
        record_id: Optional[str] = None
    ) -> str:
        """Insert a tag, letting the server stamp it when created_at is None."""
        record_id = record_id or uuid.uuid4().hex
        update: Dict[str, Any] = {"$set": {"scope_key": scope_key, "name": name}}
        if created_at is None:
            update["$currentDate"] = {"created_at": True}
        else:
            update["$set"]["created_at"] = created_at
        await self._require_collection().update_one({"_id": record_id}, update, upsert=True)
        self._logger.info(f"Added record {record_id} to scope {scope_key}")
        await self._after_write(scope_key)
        return record_id

    async def rename(self, scope_key: str, record_id: str, name: str) -> bool:
        result = await self._require_collection().update_one(
            {"_id": record_id, "scope_key": scope_key},
            {"$set": {"name": name}}
        )
        if result.matched_count > 0:
            await self._after_write(scope_key)
            return True
        return False

    async def delete(self, scope_key: str, record_id: str) -> bool:
        result = await self._require_collection().delete_one({"_id": record_id, "scope_key": scope_key})
        if result.deleted_count > 0:
            self._logger.info(f"Deleted record {record_id} from scope {scope_key}")
            await self._after_write(scope_key)
            return True
        return False

    async def _after_write(self, scope_key: str) -> None:
        # With change streams on, the watcher delivers instead
        if not self._watch_changes:
            await self.publish(scope_key)

    def _doc_to_record(self, doc: Dict[str, Any]) -> RawRecord:
        """Convert a MongoDB document to a RawRecord."""
        fields = dict(doc)
        record_id = str(fields.pop("_id"))
        fields.pop("scope_key", None)
        if "created_at" in fields:
            created_at = fields["created_at"]
            if created_at is None:
                fields["created_at"] = PendingTimestamp()
            elif isinstance(created_at, datetime):
                fields["created_at"] = FinalizedTimestamp(created_at)
        return RawRecord(id=record_id, fields=fields)

    def _require_collection(self):
        if self._collection is None:
            raise ValueError("MongoDBSubscriptionSource is not initialized")
        return self._collection
