"""
Base protocol and types for the profile store abstraction.

The profile store persists each identity's document between sessions and
hands out an exclusive lease while a server holds it.

Invariants:
    - At most one live lease per identity across all servers
    - A failed load is terminal for that attempt; callers do not retry
    - When another server takes the lease, the previous holder's release
      listeners fire

How to change safely:
    - Protocol changes require updating all implementations
    - Backends must never hand out a document without taking the lease
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Hashable, Protocol, runtime_checkable

ReleaseListener = Callable[[], Any]


class ProfileStoreError(Exception):
    """Base exception for profile store operations."""
    pass


class ProfileNotLeasedError(ProfileStoreError):
    """Release called for a document this process does not hold."""
    pass


@dataclass(frozen=True)
class ProfileKey:
    """Location of one document in the store.

    Attributes:
        store: Store name
        scope: Store scope (document version)
        identity: Identity the document belongs to
    """
    store: str
    scope: str
    identity: str

    @classmethod
    def for_identity(cls, store: str, scope: str, identity: Hashable) -> ProfileKey:
        """Build the key for an identity (integer ids are stored as decimal strings)."""
        return cls(store=store, scope=scope, identity=str(identity))

    def __str__(self) -> str:
        return f"{self.store}/{self.scope}/{self.identity}"


@runtime_checkable
class ProfileStore(Protocol):
    """Protocol for profile store backends.

    Example:
        >>> data = await store.load(42)
        >>> store.listen_to_release(42, on_released_elsewhere)
        >>> ...
        >>> await store.release(42, data)
    """

    @abstractmethod
    async def load(self, identity: Hashable) -> dict:
        """Take the lease on an identity's document and return its contents.

        Returns:
            The stored tree (an empty dict for a new identity)

        Raises:
            ProfileStoreError: If the document could not be loaded
        """
        ...

    @abstractmethod
    async def release(self, identity: Hashable, data: dict) -> None:
        """Persist the document and give up the lease.

        Raises:
            ProfileStoreError: If the document could not be saved
        """
        ...

    @abstractmethod
    def listen_to_release(self, identity: Hashable, listener: ReleaseListener) -> None:
        """Register a listener fired when the lease is taken away.

        Listeners are dropped once they fire or the lease is released.
        """
        ...
