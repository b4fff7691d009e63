# /src/livetags/sources/base.py
# Abstract SubscriptionSource - live queries with snapshot callbacks

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Coroutine, Dict, List, Optional, Set, Tuple, Type

from ..records.raw import RawRecord, SubscriptionFailure
from ..records.timestamps import as_utc
from ..records.types import ServerTimestamps, SortDirection


# Type aliases for subscription callbacks
SnapshotCallback = Callable[[List[RawRecord]], None]
ErrorCallback = Callable[[SubscriptionFailure], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class LiveQuery:
    """Which partition to watch and how to order it."""
    scope_key: str
    order_by: str = "created_at"
    direction: SortDirection = SortDirection.DESCENDING


@dataclass(eq=False)
class Subscription:
    """Source-side bookkeeping for one subscribe() call."""
    subscription_id: str
    query: LiveQuery
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    active: bool = True
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    tasks: Set[asyncio.Task] = field(default_factory=set)


class SubscriptionSource(ABC):
    """Base class for stores that serve live queries.

    A subscriber gets the full ordered collection for its scope once
    right after subscribing, and again after every change to that scope.
    Deliveries for one subscription never overlap and arrive in order.
    A backend error listed in failure_types ends the subscription with
    a single on_error call. Any other fetch error does the same, and is
    also logged as unexpected.

    Subclasses implement fetch(), and call publish() after each write.
    """

    failure_types: Tuple[Type[BaseException], ...] = ()

    def __init__(self):
        self._subscriptions: Dict[str, Subscription] = {}
        self._logger = logging.getLogger(__name__)

    # ========== Query ==========

    @abstractmethod
    async def fetch(self, query: LiveQuery) -> List[RawRecord]:
        """Return the current ordered snapshot for a query."""
        pass

    # ========== Subscriptions ==========

    def subscribe(
        self,
        query: LiveQuery,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback
    ) -> Unsubscribe:
        """Open a live query.

        Must be called from a running event loop. The first snapshot is
        delivered asynchronously, after this method returns.

        Returns:
            A disposer; calling it more than once is a no-op
        """
        loop = asyncio.get_running_loop()
        sub = Subscription(
            subscription_id=str(uuid.uuid4()),
            query=query,
            on_snapshot=on_snapshot,
            on_error=on_error
        )
        self._subscriptions[sub.subscription_id] = sub
        self._logger.debug(
            f"New subscription: {sub.subscription_id} (scope={query.scope_key})"
        )

        self._spawn(sub, self._deliver(sub), loop)
        self._start_watching(sub)

        def unsubscribe() -> None:
            self._drop(sub)

        return unsubscribe

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, scope_key: str) -> None:
        """Deliver fresh snapshots to every subscriber of a scope."""
        subs = [
            sub for sub in self._subscriptions.values()
            if sub.query.scope_key == scope_key
        ]
        if subs:
            await asyncio.gather(*(self._deliver(sub) for sub in subs))

    async def publish_all(self) -> None:
        """Deliver fresh snapshots to every subscriber."""
        subs = list(self._subscriptions.values())
        if subs:
            await asyncio.gather(*(self._deliver(sub) for sub in subs))

    def _start_watching(self, sub: Subscription) -> None:
        """Hook for sources that push changes on their own."""
        pass

    def _spawn(
        self,
        sub: Subscription,
        coro: Coroutine[Any, Any, None],
        loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> asyncio.Task:
        loop = loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        sub.tasks.add(task)
        task.add_done_callback(sub.tasks.discard)
        return task

    async def _deliver(self, sub: Subscription) -> None:
        async with sub.lock:
            if not sub.active:
                return
            try:
                records = await self.fetch(sub.query)
            except self.failure_types as e:
                self._fail(sub, SubscriptionFailure.from_exception(e))
                return
            except Exception as e:
                self._logger.error(
                    f"Unexpected error fetching {sub.subscription_id}: {type(e).__name__}: {e}"
                )
                self._fail(sub, SubscriptionFailure.from_exception(e))
                return
            if sub.active:
                self._safe_callback(sub, sub.on_snapshot, records)

    def _fail(self, sub: Subscription, failure: SubscriptionFailure) -> None:
        """End a subscription with its one terminal error."""
        if not sub.active:
            return
        self._logger.warning(
            f"Subscription {sub.subscription_id} failed: {failure.message}"
        )
        self._drop(sub)
        self._safe_callback(sub, sub.on_error, failure)

    def _drop(self, sub: Subscription) -> None:
        if not sub.active:
            return
        sub.active = False
        self._subscriptions.pop(sub.subscription_id, None)

        current = asyncio.current_task() if _loop_running() else None
        for task in list(sub.tasks):
            if task is not current:
                task.cancel()
        self._logger.debug(f"Unsubscribed: {sub.subscription_id}")

    def _safe_callback(self, sub: Subscription, callback: Callable, arg: Any) -> None:
        """Invoke a subscriber callback, catching exceptions."""
        try:
            callback(arg)
        except Exception as e:
            self._logger.error(f"Subscription {sub.subscription_id} callback failed: {e}")

    # ========== Lifecycle ==========

    async def initialize(self) -> None:
        """Prepare the backend. No-op by default."""
        pass

    async def close(self) -> None:
        """Drop every subscription. Subclasses release their backend."""
        for sub in list(self._subscriptions.values()):
            self._drop(sub)

    async def __aenter__(self):
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def sort_records(records: List[RawRecord], query: LiveQuery) -> List[RawRecord]:
    """Order records for sources without a native query engine.

    Records lacking the order field come last in either direction, and
    so do records whose value cannot be compared with the rest (a
    created_at that is not a timestamp, say). Pending timestamps sort
    by their local estimate.
    """
    keyed = [
        (record.get(query.order_by, server_timestamps=ServerTimestamps.ESTIMATE), record)
        for record in records
    ]
    kind = _sort_kind([key for key, _ in keyed])
    present = []
    missing = []
    for key, record in keyed:
        if kind is not None and isinstance(key, kind):
            present.append((as_utc(key) if kind is datetime else key, record))
        else:
            missing.append(record)
    present.sort(
        key=lambda pair: pair[0],
        reverse=query.direction == SortDirection.DESCENDING
    )
    return [record for _, record in present] + missing


def _sort_kind(keys: List[Any]) -> Optional[type]:
    """The type a field is ordered by: datetime if any value is one,
    otherwise the most common type."""
    kinds = [type(key) for key in keys if key is not None]
    if not kinds:
        return None
    if any(issubclass(kind, datetime) for kind in kinds):
        return datetime
    return max(set(kinds), key=kinds.count)
