# Tests for the LiveProjection state machine

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from livetags import (
    FinalizedTimestamp,
    LiveProjection,
    MemorySubscriptionSource,
    ProjectionState,
    RawRecord,
    SortDirection,
    SubscriptionFailure,
    SubscriptionSource,
    Tag,
)


class ManualSource(SubscriptionSource):
    """Source whose notifications the test fires by hand."""

    def __init__(self):
        super().__init__()
        self.queries = []
        self.callbacks = []
        self.disposed = []
        self.disposed_at_subscribe = []

    async def fetch(self, query):
        return []

    def subscribe(self, query, on_snapshot, on_error):
        index = len(self.queries)
        self.disposed_at_subscribe.append(list(self.disposed))
        self.queries.append(query)
        self.callbacks.append((on_snapshot, on_error))
        self.disposed.append(0)

        def unsubscribe():
            self.disposed[index] += 1

        return unsubscribe

    def snapshot(self, records, index=-1):
        self.callbacks[index][0](records)

    def error(self, message, index=-1):
        self.callbacks[index][1](SubscriptionFailure(message=message))


class RefusingSource(ManualSource):
    def subscribe(self, query, on_snapshot, on_error):
        raise PermissionError("permission-denied")


def raw(record_id, name, created_at):
    return RawRecord(id=record_id, fields={
        "name": name,
        "created_at": FinalizedTimestamp(created_at)
    })


ALPHA = raw("t1", "alpha", datetime(2024, 5, 1, 10, 3, 27, tzinfo=timezone.utc))
BETA = raw("t2", "beta", datetime(2024, 5, 2, 9, 0, tzinfo=timezone.utc))


# ========== Activation ==========

class TestActivate:
    def test_initial_state(self):
        projection = LiveProjection(ManualSource())
        assert projection.state == ProjectionState(data=None, is_loading=False, error="")
        assert projection.handle is None

    def test_activate_starts_loading(self):
        source = ManualSource()
        projection = LiveProjection(source)

        handle = projection.activate("user-1")

        assert projection.is_loading
        assert projection.error == ""
        assert projection.data is None
        assert projection.handle is handle
        assert projection.scope_key == "user-1"

    def test_query_orders_newest_first(self):
        source = ManualSource()
        LiveProjection(source).activate("user-1")

        query = source.queries[0]
        assert query.scope_key == "user-1"
        assert query.order_by == "created_at"
        assert query.direction == SortDirection.DESCENDING

    def test_refused_subscription_reports_error(self):
        projection = LiveProjection(RefusingSource())

        handle = projection.activate("user-1")

        assert projection.error == "permission-denied"
        assert not projection.is_loading
        assert handle.closed
        assert projection.handle is None


# ========== Notifications ==========

class TestNotifications:
    def test_snapshot_maps_records(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")

        source.snapshot([ALPHA])

        assert projection.data == (Tag(id="t1", name="alpha", created_at="2024-05-01 10:03"),)
        assert not projection.is_loading

    def test_each_snapshot_replaces_data(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")

        source.snapshot([ALPHA])
        first = projection.data
        source.snapshot([BETA, ALPHA])

        assert [t.id for t in projection.data] == ["t2", "t1"]
        assert [t.id for t in first] == ["t1"]
        source.snapshot([])
        assert projection.data == ()

    def test_data_cannot_be_changed_in_place(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")
        source.snapshot([ALPHA])

        assert isinstance(projection.data, tuple)
        with pytest.raises(AttributeError):
            projection.data.append(BETA)

    def test_loading_turns_false_once(self):
        source = ManualSource()
        projection = LiveProjection(source)
        seen = []
        projection.add_listener(lambda state: seen.append(state.is_loading))

        projection.activate("user-1")
        source.snapshot([ALPHA])
        source.snapshot([BETA, ALPHA])

        assert seen == [True, False, False]

    def test_error_keeps_data(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")
        source.snapshot([ALPHA])
        data_before = projection.data

        source.error("permission-denied")

        assert projection.error == "permission-denied"
        assert projection.data is data_before
        assert not projection.is_loading

    def test_error_before_first_snapshot(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")

        source.error("unavailable")

        assert projection.state == ProjectionState(data=None, is_loading=False, error="unavailable")

    def test_notifications_after_error_are_dropped(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")
        source.error("unavailable")
        state = projection.state

        source.snapshot([ALPHA])
        source.error("again")

        assert projection.state == state


# ========== Deactivation ==========

class TestDeactivate:
    def test_notifications_after_deactivate_change_nothing(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")
        source.snapshot([ALPHA])
        state = projection.state

        projection.deactivate()
        source.snapshot([BETA])
        source.error("late")

        assert projection.state == state
        assert source.disposed == [1]

    def test_deactivate_twice(self):
        source = ManualSource()
        projection = LiveProjection(source)
        handle = projection.activate("user-1")

        projection.deactivate(handle)
        state = projection.state
        projection.deactivate(handle)
        projection.deactivate()

        assert source.disposed == [1]
        assert projection.state == state
        assert projection.handle is None

    def test_deactivate_never_activated(self):
        projection = LiveProjection(ManualSource())
        projection.deactivate()
        assert projection.state == ProjectionState()

    def test_deactivate_from_listener(self):
        """A listener may tear the subscription down mid-notification."""
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")

        def stop_after_first_data(state):
            if state.data is not None:
                projection.deactivate()

        projection.add_listener(stop_after_first_data)
        source.snapshot([ALPHA])
        source.snapshot([BETA])

        assert [t.id for t in projection.data] == ["t1"]
        assert source.disposed == [1]

    def test_reactivate_new_scope_disposes_first(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")
        source.snapshot([ALPHA])

        projection.activate("user-2")

        assert source.disposed_at_subscribe[1] == [1]
        assert source.disposed == [1, 0]
        assert source.queries[1].scope_key == "user-2"
        assert projection.data is None
        assert projection.is_loading

    def test_reactivate_same_scope_keeps_data(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")
        source.snapshot([ALPHA])
        source.error("unavailable")

        projection.activate("user-1")

        assert [t.id for t in projection.data] == ["t1"]
        assert projection.is_loading
        assert projection.error == ""

    def test_stale_handle_is_ignored(self):
        source = ManualSource()
        projection = LiveProjection(source)
        projection.activate("user-1")
        projection.activate("user-2")

        source.snapshot([ALPHA], index=0)
        assert projection.data is None

        source.snapshot([BETA], index=1)
        assert [t.id for t in projection.data] == ["t2"]

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        source = ManualSource()
        async with LiveProjection(source) as projection:
            projection.activate("user-1")
        assert source.disposed == [1]
        assert projection.handle is None


# ========== Listeners ==========

class TestListeners:
    def test_remove_listener(self):
        source = ManualSource()
        projection = LiveProjection(source)
        seen = []
        listener_id = projection.add_listener(seen.append)

        projection.activate("user-1")
        assert projection.remove_listener(listener_id)
        assert not projection.remove_listener(listener_id)
        source.snapshot([ALPHA])

        assert len(seen) == 1

    def test_failing_listener_is_contained(self, caplog):
        source = ManualSource()
        projection = LiveProjection(source)
        seen = []

        def broken(state):
            raise RuntimeError("boom")

        projection.add_listener(broken)
        projection.add_listener(seen.append)

        with caplog.at_level(logging.ERROR):
            projection.activate("user-1")
            source.snapshot([ALPHA])

        assert len(seen) == 2
        assert not projection.is_loading
        assert "boom" in caplog.text


# ========== With a real source ==========

class TestWithMemorySource:
    @pytest.mark.asyncio
    async def test_initial_snapshot_newest_first(self):
        async with MemorySubscriptionSource() as source:
            await source.add("user-1", "older", datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc))
            await source.add("user-1", "newer", datetime(2024, 5, 2, 9, 0, tzinfo=timezone.utc))
            await source.add("user-2", "other", datetime(2024, 5, 3, 9, 0, tzinfo=timezone.utc))

            projection = LiveProjection(source)
            projection.activate("user-1")
            assert projection.is_loading

            state = await projection.wait_until_loaded(timeout=1)

            assert [t.name for t in state.data] == ["newer", "older"]
            assert [t.created_at for t in state.data] == ["2024-05-02 09:00", "2024-05-01 09:00"]

    @pytest.mark.asyncio
    async def test_live_updates(self):
        async with MemorySubscriptionSource() as source:
            projection = LiveProjection(source)
            projection.activate("user-1")
            await projection.wait_until_loaded(timeout=1)
            assert projection.data == ()

            tag_id = await source.add("user-1", "fresh")
            assert [t.id for t in projection.data] == [tag_id]

            await source.rename("user-1", tag_id, "renamed")
            assert projection.data[0].name == "renamed"

            await source.delete("user-1", tag_id)
            assert projection.data == ()

    @pytest.mark.asyncio
    async def test_server_timestamp_shows_while_pending(self):
        source = MemorySubscriptionSource(
            clock=lambda: datetime(2024, 5, 1, 10, 3, 27, tzinfo=timezone.utc)
        )
        projection = LiveProjection(source)
        projection.activate("user-1")
        await projection.wait_until_loaded(timeout=1)
        seen = []
        projection.add_listener(lambda state: seen.append(state.data))

        await source.add("user-1", "alpha")

        assert len(seen) == 2
        assert seen[0][0].created_at == "2024-05-01 10:03"
        assert seen[1][0].created_at == "2024-05-01 10:03"

    @pytest.mark.asyncio
    async def test_failure_keeps_data(self):
        async with MemorySubscriptionSource() as source:
            await source.add("user-1", "alpha", datetime(2024, 5, 1, tzinfo=timezone.utc))
            projection = LiveProjection(source)
            projection.activate("user-1")
            await projection.wait_until_loaded(timeout=1)

            source.fail("user-1", "permission-denied")

            assert projection.error == "permission-denied"
            assert [t.name for t in projection.data] == ["alpha"]
            assert source.subscription_count == 0

    @pytest.mark.asyncio
    async def test_deactivate_before_first_snapshot(self):
        """The initial delivery is cancelled and never lands."""
        async with MemorySubscriptionSource() as source:
            await source.add("user-1", "alpha", datetime(2024, 5, 1, tzinfo=timezone.utc))
            projection = LiveProjection(source)
            projection.activate("user-1")
            projection.deactivate()

            await asyncio.sleep(0)
            await source.add("user-1", "beta", datetime(2024, 5, 2, tzinfo=timezone.utc))

            assert projection.data is None
            assert projection.is_loading
            assert source.subscription_count == 0

    @pytest.mark.asyncio
    async def test_switch_scope(self):
        async with MemorySubscriptionSource() as source:
            await source.add("user-1", "one", datetime(2024, 5, 1, tzinfo=timezone.utc))
            await source.add("user-2", "two", datetime(2024, 5, 1, tzinfo=timezone.utc))
            projection = LiveProjection(source)

            projection.activate("user-1")
            await projection.wait_until_loaded(timeout=1)
            projection.activate("user-2")
            await projection.wait_until_loaded(timeout=1)
            await source.add("user-1", "ignored", datetime(2024, 5, 2, tzinfo=timezone.utc))

            assert [t.name for t in projection.data] == ["two"]
            assert source.subscription_count == 1
