"""
Base protocol and types for the session transport.

The transport carries encoded diffs from the server to exactly one client
and can terminate that client's connection.

Invariants:
    - Payloads sent to one identity arrive in the order they were sent
    - send() to a disconnected identity is dropped, not queued
    - The transport never inspects payloads

How to change safely:
    - Protocol changes require updating all implementations
    - New backends must preserve per-identity ordering; the replication
      layer does not add sequence numbers
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import Hashable, Protocol, runtime_checkable


class TransportError(Exception):
    """Base exception for transport operations."""
    pass


class ChannelClosedError(TransportError):
    """The client end of a channel has been closed."""
    pass


@dataclass(frozen=True)
class DiffMessage:
    """One replicated diff as it travels over the wire.

    Attributes:
        identity: Recipient
        added: Encoded added-tree
        removed: Encoded removed-tree
    """
    identity: Hashable
    added: bytes
    removed: bytes

    def __str__(self) -> str:
        return f"DiffMessage(identity={self.identity}, added={len(self.added)}B, removed={len(self.removed)}B)"


@runtime_checkable
class Transport(Protocol):
    """Protocol for server-to-client transports.

    Example:
        >>> await transport.send(42, codec.encode(added), codec.encode(removed))
        >>> await transport.kick(42, "Data loaded on another server!")
    """

    @abstractmethod
    async def send(self, identity: Hashable, added: bytes, removed: bytes) -> None:
        """Deliver one diff to an identity.

        Raises:
            TransportError: If delivery failed
        """
        ...

    @abstractmethod
    async def kick(self, identity: Hashable, reason: str) -> None:
        """Terminate an identity's connection with a reason."""
        ...
