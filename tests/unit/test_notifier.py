"""
Unit tests for ChangeNotifier.

Tests cover:
- Initial delivery at subscribe time
- Delivery after diffs (including deletions)
- Disconnect
- Fault isolation between callbacks
- Subscribing and disconnecting during delivery
"""

import asyncio

import pytest

from sdk.profilesync_sdk.notifier import ChangeNotifier
from sdk.profilesync_sdk.tree import ABSENT, deep_copy, diff, merge


def apply(notifier, root, current):
    """Move ``root`` to ``current`` and notify, the way an owner does."""
    added, removed = diff(root, current)
    merge(root, added, removed)
    return notifier.notify(added, removed, root)


class TestChangeNotifier:
    """Tests for ChangeNotifier."""

    @pytest.fixture
    def notifier(self):
        """Create a notifier."""
        return ChangeNotifier("test")

    @pytest.mark.asyncio
    async def test_fires_immediately_when_present(self, notifier):
        """Subscribing to an existing path delivers its value."""
        seen = []
        root = {"Currencies": {"Money": 10}}

        notifier.subscribe(("Currencies", "Money"), seen.append, root)
        await notifier.drain()

        assert seen == [10]

    @pytest.mark.asyncio
    async def test_no_initial_call_when_absent(self, notifier):
        """Subscribing to a missing path delivers nothing yet."""
        seen = []

        notifier.subscribe(("Currencies", "Money"), seen.append, {})
        await notifier.drain()

        assert seen == []

    @pytest.mark.asyncio
    async def test_fires_on_change(self, notifier):
        """A diff touching the path delivers the new value."""
        seen = []
        root = {"Currencies": {"Money": 10}}
        notifier.subscribe("Currencies.Money", seen.append, root)

        fired = apply(notifier, root, {"Currencies": {"Money": 15}})
        await notifier.drain()

        assert fired == 1
        assert seen == [10, 15]

    @pytest.mark.asyncio
    async def test_unrelated_change_does_not_fire(self, notifier):
        """Changes elsewhere leave the subscription alone."""
        seen = []
        root = {"Currencies": {"Money": 10}, "Level": 1}
        notifier.subscribe(("Currencies", "Money"), seen.append, root)

        fired = apply(notifier, root, {"Currencies": {"Money": 10}, "Level": 2})
        await notifier.drain()

        assert fired == 0
        assert seen == [10]

    @pytest.mark.asyncio
    async def test_deletion_delivers_absent(self, notifier):
        """Deleting the watched value delivers ABSENT."""
        seen = []
        root = {"Currencies": {"Money": 10}}
        notifier.subscribe(("Currencies", "Money"), seen.append, root)

        apply(notifier, root, {"Currencies": {}})
        await notifier.drain()

        assert seen == [10, ABSENT]

    @pytest.mark.asyncio
    async def test_ancestor_deletion_delivers_absent(self, notifier):
        """Deleting an ancestor also delivers ABSENT."""
        seen = []
        root = {"Currencies": {"Money": 10}}
        notifier.subscribe(("Currencies", "Money"), seen.append, root)

        apply(notifier, root, {})
        await notifier.drain()

        assert seen == [10, ABSENT]

    @pytest.mark.asyncio
    async def test_parent_path_sees_child_change(self, notifier):
        """A subscription on a sub-tree gets the whole sub-tree."""
        seen = []
        root = {"Currencies": {"Money": 10, "Gems": 1}}
        notifier.subscribe(("Currencies",), seen.append, root)

        apply(notifier, root, {"Currencies": {"Money": 11, "Gems": 1}})
        await notifier.drain()

        assert seen[-1] == {"Money": 11, "Gems": 1}

    @pytest.mark.asyncio
    async def test_callbacks_receive_copies(self, notifier):
        """Mutating a delivered value never reaches the owner's tree."""
        root = {"Inventory": {"Sword": 1}}

        def vandal(value):
            value["Sword"] = 999

        notifier.subscribe(("Inventory",), vandal, root)
        await notifier.drain()

        assert root == {"Inventory": {"Sword": 1}}

    @pytest.mark.asyncio
    async def test_disconnect(self, notifier):
        """A disconnected callback is not called again."""
        seen = []
        root = {"a": 1}
        disconnect = notifier.subscribe(("a",), seen.append, root)
        await notifier.drain()

        disconnect()
        apply(notifier, root, {"a": 2})
        await notifier.drain()

        assert seen == [1]
        assert len(notifier) == 0

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, notifier):
        """Calling disconnect twice does nothing the second time."""
        disconnect = notifier.subscribe(("a",), lambda value: None, {})
        other = notifier.subscribe(("a",), lambda value: None, {})

        disconnect()
        disconnect()

        assert len(notifier) == 1
        other()
        assert len(notifier) == 0

    @pytest.mark.asyncio
    async def test_failing_callback_is_isolated(self, notifier):
        """One callback raising does not stop the others."""
        seen = []
        root = {"a": 1}

        def broken(value):
            raise RuntimeError("boom")

        notifier.subscribe(("a",), broken, root)
        notifier.subscribe(("a",), seen.append, root)

        apply(notifier, root, {"a": 2})
        await notifier.drain()

        assert seen == [1, 2]
        assert notifier.stats["fault_count"] == 2

    @pytest.mark.asyncio
    async def test_async_callbacks(self, notifier):
        """Coroutine callbacks are awaited."""
        seen = []
        root = {"a": 1}

        async def slow(value):
            await asyncio.sleep(0.01)
            seen.append(value)

        notifier.subscribe(("a",), slow, root)
        await notifier.drain()

        assert seen == [1]

    @pytest.mark.asyncio
    async def test_slow_callback_does_not_block_notify(self, notifier):
        """notify() returns before callbacks finish."""
        release = asyncio.Event()
        seen = []
        root = {"a": 1}

        async def blocked(value):
            await release.wait()
            seen.append(value)

        notifier.subscribe(("a",), blocked, {})
        notifier.subscribe(("a",), seen.append, {})

        apply(notifier, root, {"a": 2})
        await asyncio.sleep(0)

        assert seen == [2]
        release.set()
        await notifier.drain()
        assert seen == [2, 2]

    @pytest.mark.asyncio
    async def test_disconnect_during_delivery(self, notifier):
        """Disconnecting another subscription mid-delivery is safe."""
        seen = []
        root = {"a": 1}
        handles = {}

        def first(value):
            handles["second"]()
            seen.append(("first", value))

        notifier.subscribe(("a",), first, {})
        handles["second"] = notifier.subscribe(("a",), lambda v: seen.append(("second", v)), {})

        apply(notifier, root, {"a": 2})
        await notifier.drain()

        # delivery was scheduled from a snapshot, so both ran this time
        assert ("first", 2) in seen
        assert len(notifier) == 1

    @pytest.mark.asyncio
    async def test_subscribe_during_delivery(self, notifier):
        """Subscribing from a callback does not affect the current round."""
        root = {"a": 1}
        late = []

        def subscriber(value):
            notifier.subscribe(("a",), late.append, root)

        notifier.subscribe(("a",), subscriber, {})
        apply(notifier, root, {"a": 2})
        await notifier.drain()

        # the late subscriber only got its own initial value
        assert late == [2]

    @pytest.mark.asyncio
    async def test_empty_diff_fires_nothing(self, notifier):
        seen = []
        notifier.subscribe((), seen.append, {})
        await notifier.drain()

        assert notifier.notify({}, {}, {}) == 0
        assert seen == [{}]

    @pytest.mark.asyncio
    async def test_clear(self, notifier):
        notifier.subscribe(("a",), lambda value: None, {})
        notifier.clear()

        assert len(notifier) == 0
        assert notifier.stats["subscriptions"] == 0

    @pytest.mark.asyncio
    async def test_root_subscription(self, notifier):
        """The empty path watches the whole tree."""
        seen = []
        root = {"a": 1}
        notifier.subscribe((), seen.append, root)

        apply(notifier, root, {"a": 1, "b": 2})
        await notifier.drain()

        assert seen == [{"a": 1}, deep_copy(root)]
