"""
Client-side mirror of a session's tree.

The MirrorStore rebuilds the server's tree purely from the diffs it
receives. The first diff is the full initial state (everything added,
nothing removed); every later diff is merged on top.

Invariants:
    - The local tree is only ever written by on_receive()
    - get() and peek() hand out copies, never the live tree
    - Diffs are merged in the order the transport delivers them

How to change safely:
    - Never accept state from anywhere but the transport
    - Keep on_receive() synchronous so deliveries cannot interleave
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from .codec import Codec, MsgpackCodec
from .errors import MirrorNotReadyError
from .notifier import ChangeCallback, ChangeNotifier, Disconnect
from .path import Path
from .tree import Tree, deep_copy, merge

logger = logging.getLogger(__name__)

ReceiveHandler = Callable[[bytes, bytes], Any]


class Channel(Protocol):
    """The receiving end of a point-to-point transport."""

    def on_receive(self, handler: ReceiveHandler) -> None:
        ...


class MirrorStore:
    """Local replica of one session's tree.

    Example:
        >>> mirror = MirrorStore()
        >>> mirror.attach(channel)
        >>> data = await mirror.get()
        >>> disconnect = mirror.listen_to_value_changed(
        ...     ["Currencies", "Money"], lambda money: print(money)
        ... )
    """

    def __init__(self, codec: Codec | None = None, name: str = "mirror") -> None:
        self.name = name
        self.codec = codec or MsgpackCodec()
        self._data: Tree = {}
        self._notifier = ChangeNotifier(name)
        self._ready = asyncio.Event()
        self._received_count = 0

    def attach(self, channel: Channel) -> None:
        """Start receiving diffs from a transport channel."""
        channel.on_receive(self.on_receive)

    def on_receive(self, encoded_added: bytes, encoded_removed: bytes) -> None:
        """Merge one diff from the server and notify subscribers.

        Raises:
            CodecError: If either payload cannot be decoded; the local tree
                is left untouched
        """
        added = self.codec.decode(encoded_added)
        removed = self.codec.decode(encoded_removed)

        merge(self._data, added, removed)
        self._received_count += 1
        self._ready.set()

        logger.debug(
            "Mirror merged diff",
            extra={
                "mirror": self.name,
                "added_keys": len(added),
                "removed_keys": len(removed),
            },
        )

        self._notifier.notify(added, removed, self._data)

    async def get(self, timeout: float | None = None) -> Tree:
        """Get a copy of the mirrored tree, waiting for the initial state.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely

        Raises:
            MirrorNotReadyError: If nothing arrived within the timeout
        """
        if not self._ready.is_set():
            try:
                await asyncio.wait_for(self._ready.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                raise MirrorNotReadyError(timeout) from None
        return deep_copy(self._data)

    def peek(self) -> Tree | None:
        """Get a copy of the mirrored tree, or None before the initial state."""
        if not self._ready.is_set():
            return None
        return deep_copy(self._data)

    def listen_to_value_changed(self, path: Path | str, callback: ChangeCallback) -> Disconnect:
        """Call ``callback`` whenever the value at ``path`` changes.

        Fires once right away when the path already holds a value. After a
        deletion the callback receives ABSENT.

        Returns:
            Disconnect function (idempotent)
        """
        return self._notifier.subscribe(path, callback, self._data)

    async def drain(self) -> None:
        """Wait for all scheduled change callbacks to finish."""
        await self._notifier.drain()

    @property
    def is_ready(self) -> bool:
        """Whether the initial state has been received."""
        return self._ready.is_set()

    @property
    def stats(self) -> dict[str, Any]:
        """Get mirror statistics."""
        return {
            "ready": self.is_ready,
            "received_count": self._received_count,
            **self._notifier.stats,
        }
