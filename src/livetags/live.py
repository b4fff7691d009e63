# /src/livetags/live.py
# LiveProjection - keeps a consumer's view in step with a live query

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

from .projections.base import Projection
from .projections.tag import TagProjection
from .records.raw import RawRecord, SubscriptionFailure
from .records.types import SortDirection
from .sources.base import LiveQuery, SubscriptionSource, Unsubscribe
from .tag import Tag


@dataclass(frozen=True)
class ProjectionState:
    """What a consumer renders: the tags, whether they are loading, and
    the last subscription error ("" when there is none)."""
    data: Optional[Tuple[Tag, ...]] = None
    is_loading: bool = False
    error: str = ""


# Type alias for state listeners
StateListener = Callable[[ProjectionState], None]


class SubscriptionHandle:
    """Caller-held token for one subscription.

    close() releases the underlying subscription exactly once; later
    calls are no-ops.
    """

    def __init__(self, scope_key: str):
        self.handle_id = str(uuid.uuid4())
        self.scope_key = scope_key
        self.closed = False
        self.failed = False
        self._unsubscribe: Optional[Unsubscribe] = None

    def attach(self, unsubscribe: Unsubscribe) -> None:
        """Bind the source's disposer. Releases it at once if already closed."""
        if self.closed:
            unsubscribe()
            return
        self._unsubscribe = unsubscribe

    def close(self) -> bool:
        """Release the subscription.

        Returns:
            True on the first call, False afterwards
        """
        if self.closed:
            return False
        self.closed = True
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        return True

    @property
    def accepts_notifications(self) -> bool:
        return not self.closed and not self.failed

    def __repr__(self) -> str:
        return (
            f"SubscriptionHandle(scope_key={self.scope_key!r}, "
            f"closed={self.closed}, failed={self.failed})"
        )


class LiveProjection:
    """Live, ordered view of one scope's tags.

    activate() opens a subscription on the source and deactivate()
    releases it. In between, every snapshot the source delivers replaces
    data wholesale, in the source's order, and a failure sets error
    while keeping the last data. is_loading is True from activate()
    until the first snapshot or failure.

    All notifications are applied on the event loop, one at a time.
    A notification for a handle that has been closed, replaced or has
    already failed is dropped.
    """

    def __init__(
        self,
        source: SubscriptionSource,
        projection: Optional[Projection[List[Tag]]] = None,
        order_by: str = "created_at",
        direction: SortDirection = SortDirection.DESCENDING
    ):
        self._source = source
        self._projection = projection or TagProjection()
        self._order_by = order_by
        self._direction = direction
        self._state = ProjectionState()
        self._handle: Optional[SubscriptionHandle] = None
        self._last_scope_key: Optional[str] = None
        self._listeners: Dict[str, StateListener] = {}
        self._loaded = asyncio.Event()
        self._loaded.set()
        self._logger = logging.getLogger(__name__)

    @property
    def source(self) -> SubscriptionSource:
        return self._source

    @property
    def state(self) -> ProjectionState:
        return self._state

    @property
    def data(self) -> Optional[Tuple[Tag, ...]]:
        return self._state.data

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> str:
        return self._state.error

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        """The active handle, or None when deactivated."""
        return self._handle

    @property
    def scope_key(self) -> Optional[str]:
        return self._handle.scope_key if self._handle else None

    # ========== Lifecycle ==========

    def activate(self, scope_key: str) -> SubscriptionHandle:
        """Subscribe to a scope, replacing any current subscription.

        Re-activating the same scope (for example to retry after an
        error) keeps the last data visible while loading; a new scope
        starts empty. A source that refuses the subscription outright
        is reported through error, and the returned handle is closed.
        """
        if self._handle is not None:
            self.deactivate(self._handle)

        keep_data = scope_key == self._last_scope_key
        self._last_scope_key = scope_key

        handle = SubscriptionHandle(scope_key)
        self._handle = handle
        self._loaded.clear()
        self._set_state(ProjectionState(
            data=self._state.data if keep_data else None,
            is_loading=True,
            error=""
        ))

        query = LiveQuery(
            scope_key=scope_key,
            order_by=self._order_by,
            direction=self._direction
        )
        try:
            unsubscribe = self._source.subscribe(
                query,
                on_snapshot=lambda records: self._on_snapshot(handle, records),
                on_error=lambda failure: self._on_error(handle, failure)
            )
        except Exception as e:
            self._logger.warning(f"Subscribe to scope {scope_key} refused: {e}")
            self._on_error(handle, SubscriptionFailure.from_exception(e))
            self.deactivate(handle)
            return handle

        handle.attach(unsubscribe)
        self._logger.debug(f"Activated {handle.handle_id} for scope {scope_key}")
        return handle

    def deactivate(self, handle: Optional[SubscriptionHandle] = None) -> None:
        """Release a subscription (the current one by default).

        Safe to call repeatedly and from inside a listener or
        notification. Leaves the state as it was.
        """
        handle = handle or self._handle
        if handle is None:
            return
        if handle is self._handle:
            self._handle = None
        if handle.close():
            self._logger.debug(f"Deactivated {handle.handle_id} (scope {handle.scope_key})")

    async def wait_until_loaded(self, timeout: Optional[float] = None) -> ProjectionState:
        """Wait for the first snapshot or failure after activate()."""
        await asyncio.wait_for(self._loaded.wait(), timeout)
        return self._state

    # ========== Listeners ==========

    def add_listener(self, listener: StateListener) -> str:
        """Call listener with the new state after every change.

        Returns:
            Listener ID (use to remove it)
        """
        listener_id = str(uuid.uuid4())
        self._listeners[listener_id] = listener
        return listener_id

    def remove_listener(self, listener_id: str) -> bool:
        return self._listeners.pop(listener_id, None) is not None

    # ========== Notifications ==========

    def _on_snapshot(self, handle: SubscriptionHandle, records: List[RawRecord]) -> None:
        if not self._accepts(handle, "snapshot"):
            return
        tags = tuple(self._projection.project(records))
        self._set_state(replace(self._state, data=tags, is_loading=False))

    def _on_error(self, handle: SubscriptionHandle, failure: SubscriptionFailure) -> None:
        if not self._accepts(handle, "failure"):
            return
        handle.failed = True
        self._logger.warning(f"Subscription for scope {handle.scope_key} failed: {failure.message}")
        self._set_state(replace(self._state, error=failure.message, is_loading=False))

    def _accepts(self, handle: SubscriptionHandle, kind: str) -> bool:
        if handle is self._handle and handle.accepts_notifications:
            return True
        self._logger.debug(f"Discarding {kind} for stale handle {handle!r}")
        return False

    def _set_state(self, state: ProjectionState) -> None:
        self._state = state
        if not state.is_loading:
            self._loaded.set()
        for listener_id, listener in list(self._listeners.items()):
            try:
                listener(state)
            except Exception as e:
                self._logger.error(f"Listener {listener_id} failed: {e}")

    # ========== Context manager ==========

    async def close(self) -> None:
        """Release the current subscription."""
        self.deactivate()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
