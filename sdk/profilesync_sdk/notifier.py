"""
Path-based change notification.

A ChangeNotifier holds (path, callback) subscriptions for one tree owner
(a server session or a client mirror). After every diff it works out which
subscriptions the diff touched and calls them with the value now stored at
their path.

Invariants:
    - Every callback runs as its own asyncio task; a slow or failing
      callback never delays or aborts delivery to the others
    - A callback is called at subscribe time only if its path exists, but
      may later be called with ABSENT when the value is deleted
    - notify() iterates over a snapshot, so callbacks may subscribe or
      disconnect while a notification is being delivered
    - Callbacks receive copies; they cannot mutate the owner's tree

How to change safely:
    - Keep dispatch non-blocking: notify() runs inside the update drain loop
    - Test fault isolation whenever dispatch changes
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Hashable

from .path import Path, normalize_path, resolve, touches
from .tree import ABSENT, Tree, deep_copy

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[Any], Any]
Disconnect = Callable[[], None]


@dataclass(eq=False)
class Subscription:
    """A callback listening to one path.

    Attributes:
        path: Keys identifying the watched location
        callback: Called with the new value (sync function or coroutine function)
    """

    path: tuple[Hashable, ...]
    callback: ChangeCallback


class ChangeNotifier:
    """Delivers diff-driven change notifications to path subscribers.

    Must be used from inside a running event loop: callbacks are scheduled
    as tasks on it.

    Example:
        >>> notifier = ChangeNotifier("session:42")
        >>> disconnect = notifier.subscribe(("Currencies", "Money"), print, tree)
        >>> notifier.notify(added, removed, tree)
        >>> disconnect()
    """

    def __init__(self, owner: str = "") -> None:
        self.owner = owner
        # dict keeps subscription order stable for delivery
        self._subscriptions: dict[Subscription, None] = {}
        self._pending: set[asyncio.Task] = set()
        self._fired_count = 0
        self._fault_count = 0

    def subscribe(
        self,
        path: Path | str,
        callback: ChangeCallback,
        current_root: Tree,
    ) -> Disconnect:
        """Register a callback for a path.

        The callback is scheduled right away with the current value when the
        path exists.

        Args:
            path: Keys (or a dotted string) identifying the location
            callback: Function called with the new value
            current_root: The owner's tree as it is now

        Returns:
            A disconnect function; calling it more than once is a no-op
        """
        subscription = Subscription(normalize_path(path), callback)

        initial = resolve(current_root, subscription.path)
        if initial is not ABSENT:
            self._dispatch(subscription, initial)

        self._subscriptions[subscription] = None

        def disconnect() -> None:
            self._subscriptions.pop(subscription, None)

        return disconnect

    def notify(self, added: Tree, removed: Tree, current_root: Tree) -> int:
        """Fire every subscription whose path the diff touched.

        Args:
            added: Added side of the diff
            removed: Removed side of the diff
            current_root: The owner's tree after the diff was applied

        Returns:
            Number of callbacks scheduled
        """
        if not added and not removed:
            return 0

        fired = 0
        for subscription in list(self._subscriptions):
            if touches(added, subscription.path) or touches(removed, subscription.path):
                self._dispatch(subscription, resolve(current_root, subscription.path))
                fired += 1
        return fired

    def _dispatch(self, subscription: Subscription, value: Any) -> None:
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._invoke(subscription, deep_copy(value)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._fired_count += 1

    async def _invoke(self, subscription: Subscription, value: Any) -> None:
        try:
            result = subscription.callback(value)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._fault_count += 1
            logger.exception(
                "Change callback failed",
                extra={"owner": self.owner, "path": list(subscription.path)},
            )

    async def drain(self) -> None:
        """Wait until every scheduled callback has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def clear(self) -> None:
        """Drop all subscriptions."""
        self._subscriptions.clear()

    def __len__(self) -> int:
        return len(self._subscriptions)

    @property
    def stats(self) -> dict[str, Any]:
        """Get notifier statistics."""
        return {
            "subscriptions": len(self._subscriptions),
            "pending": len(self._pending),
            "fired_count": self._fired_count,
            "fault_count": self._fault_count,
        }
