"""
Session transport abstraction for ProfileSync.

The transport moves encoded diffs from the server to one specific client
and can terminate that client's connection. This module provides the
protocol plus an in-memory backend that wires sessions to MirrorStores in
the same process.

Invariants:
    - Per-identity delivery order equals send order
"""

from .base import ChannelClosedError, DiffMessage, Transport, TransportError
from .memory import ClientChannel, InMemoryTransport

__all__ = [
    # Protocol and types
    "Transport",
    "DiffMessage",
    "TransportError",
    "ChannelClosedError",
    # Implementations
    "InMemoryTransport",
    "ClientChannel",
]
