"""
In-memory transport implementation for testing.

Connects a server-side SessionStore to MirrorStores in the same process:
every identity gets a ClientChannel, and send() hands the payloads
straight to the handler registered on that channel.

Invariants:
    - Delivery is synchronous with send(), so per-identity order is kept
    - Sends to an identity without an open channel are recorded and dropped
    - A kicked channel is closed and receives nothing further

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the Transport protocol
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Hashable, List, Optional

from .base import ChannelClosedError, DiffMessage

logger = logging.getLogger(__name__)

ReceiveHandler = Callable[[bytes, bytes], Any]


class ClientChannel:
    """Client end of an in-memory connection.

    Attributes:
        identity: Identity this channel belongs to
        closed: Whether the server has terminated the connection
        close_reason: Reason given when the connection was terminated
    """

    def __init__(self, identity: Hashable) -> None:
        self.identity = identity
        self.closed = False
        self.close_reason: Optional[str] = None
        self._handler: Optional[ReceiveHandler] = None

    def on_receive(self, handler: ReceiveHandler) -> None:
        """Register the handler for incoming diffs (once per channel).

        Raises:
            ValueError: If a handler is already registered
        """
        if self._handler is not None:
            raise ValueError(f"Channel for {self.identity!r} already has a receive handler")
        self._handler = handler

    async def deliver(self, message: DiffMessage) -> bool:
        """Hand one message to the handler.

        Returns:
            True if a handler consumed it

        Raises:
            ChannelClosedError: If the channel was closed
        """
        if self.closed:
            raise ChannelClosedError(f"Channel for {self.identity!r} is closed")
        if self._handler is None:
            return False

        result = self._handler(message.added, message.removed)
        if inspect.isawaitable(result):
            await result
        return True

    def close(self, reason: str) -> None:
        self.closed = True
        self.close_reason = reason


class InMemoryTransport:
    """In-memory implementation of Transport.

    Example:
        >>> transport = InMemoryTransport()
        >>> channel = transport.connect(42)
        >>> mirror.attach(channel)
        >>> await transport.send(42, added_bytes, removed_bytes)
    """

    def __init__(self) -> None:
        self._channels: Dict[Hashable, ClientChannel] = {}
        self._sent: Dict[Hashable, List[DiffMessage]] = defaultdict(list)
        self.kicked: Dict[Hashable, str] = {}

    def connect(self, identity: Hashable) -> ClientChannel:
        """Open (or replace) the channel for an identity."""
        channel = ClientChannel(identity)
        self._channels[identity] = channel
        self.kicked.pop(identity, None)
        return channel

    def disconnect(self, identity: Hashable) -> None:
        """Drop the channel for an identity from the client side."""
        self._channels.pop(identity, None)

    async def send(self, identity: Hashable, added: bytes, removed: bytes) -> None:
        """Deliver a diff to the identity's channel, if one is open."""
        message = DiffMessage(identity=identity, added=added, removed=removed)
        self._sent[identity].append(message)

        channel = self._channels.get(identity)
        if channel is None or channel.closed:
            logger.debug("Dropping diff for disconnected identity", extra={"identity": str(identity)})
            return

        await channel.deliver(message)

    async def kick(self, identity: Hashable, reason: str) -> None:
        """Close the identity's channel."""
        self.kicked[identity] = reason
        channel = self._channels.pop(identity, None)
        if channel is not None:
            channel.close(reason)

        logger.info("Identity kicked", extra={"identity": str(identity), "reason": reason})

    # Testing helpers

    def get_sent(self, identity: Hashable) -> List[DiffMessage]:
        """Get every message sent to an identity (testing helper)."""
        return list(self._sent.get(identity, []))

    def is_connected(self, identity: Hashable) -> bool:
        """Whether an identity has an open channel."""
        channel = self._channels.get(identity)
        return channel is not None and not channel.closed
