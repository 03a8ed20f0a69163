"""
In-memory profile store implementation for testing.

This module provides a simple in-memory profile store for:
- Unit tests
- Integration tests
- Local development without an external database

Invariants:
    - All data is lost on process exit
    - Provides the same leasing guarantees as production backends
    - Documents are copied on load and release; callers never share state
      with the store

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the ProfileStore protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Dict, Hashable, List, Optional

from sdk.profilesync_sdk.tree import deep_copy

from .base import (
    ProfileKey,
    ProfileNotLeasedError,
    ProfileStoreError,
    ReleaseListener,
)

logger = logging.getLogger(__name__)


class InMemoryProfileStore:
    """In-memory implementation of ProfileStore for testing.

    Loading an identity that is already leased behaves like the document
    being opened on another server: the current holder's release listeners
    fire and the lease moves to the new load.

    Thread safety:
        Uses one asyncio lock per document, so loads of the same identity
        never overlap while different identities load concurrently.

    Example:
        >>> store = InMemoryProfileStore()
        >>> data = await store.load(42)
        >>> data["Coins"] = 5
        >>> await store.release(42, data)
        >>> store.get_document(42)
        {'Coins': 5}
    """

    def __init__(
        self,
        name: str = "Alpha",
        scope: str = "0.0.1",
        load_delay: float = 0.0,
    ) -> None:
        """Initialize in-memory profile store.

        Args:
            name: Store name
            scope: Store scope
            load_delay: Seconds each load suspends for, to simulate I/O
        """
        self.name = name
        self.scope = scope
        self.load_delay = load_delay
        self._documents: Dict[ProfileKey, dict] = {}
        self._leased: set[ProfileKey] = set()
        self._listeners: Dict[ProfileKey, List[ReleaseListener]] = defaultdict(list)
        self._locks: Dict[ProfileKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._failures: Dict[ProfileKey, Exception] = {}
        self._load_count = 0

    def _key(self, identity: Hashable) -> ProfileKey:
        return ProfileKey.for_identity(self.name, self.scope, identity)

    async def load(self, identity: Hashable) -> dict:
        """Lease and return a copy of the identity's document.

        Args:
            identity: Document owner

        Returns:
            Copy of the stored tree (empty for a new identity)

        Raises:
            ProfileStoreError: If a failure was injected with fail_next_load()
        """
        key = self._key(identity)

        async with self._locks[key]:
            self._load_count += 1

            if self.load_delay:
                await asyncio.sleep(self.load_delay)

            failure = self._failures.pop(key, None)
            if failure is not None:
                logger.warning("Injected profile load failure", extra={"key": str(key)})
                raise failure

            if key in self._leased:
                logger.warning("Document leased elsewhere, taking over", extra={"key": str(key)})
                await self._revoke(key)

            self._leased.add(key)
            data = deep_copy(self._documents.get(key, {}))

        logger.debug("Profile loaded", extra={"key": str(key), "keys": len(data)})
        return data

    async def release(self, identity: Hashable, data: dict) -> None:
        """Persist a copy of the document and drop the lease.

        Raises:
            ProfileNotLeasedError: If the document is not leased
        """
        key = self._key(identity)

        if key not in self._leased:
            raise ProfileNotLeasedError(f"Document not leased: {key}")

        self._documents[key] = deep_copy(data)
        self._leased.discard(key)
        self._listeners.pop(key, None)

        logger.debug("Profile released", extra={"key": str(key)})

    def listen_to_release(self, identity: Hashable, listener: ReleaseListener) -> None:
        """Register a listener for the lease being taken away."""
        self._listeners[self._key(identity)].append(listener)

    async def _revoke(self, key: ProfileKey) -> None:
        self._leased.discard(key)
        listeners = self._listeners.pop(key, [])

        for listener in listeners:
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Release listener failed", extra={"key": str(key)})

    # Testing helpers

    async def force_release(self, identity: Hashable) -> None:
        """Take the lease away as if another server opened the document."""
        key = self._key(identity)
        if key in self._leased:
            await self._revoke(key)

    def fail_next_load(
        self,
        identity: Hashable,
        error: Optional[Exception] = None,
    ) -> None:
        """Make the next load of an identity raise."""
        key = self._key(identity)
        self._failures[key] = error or ProfileStoreError(f"Injected load failure for {key}")

    def get_document(self, identity: Hashable) -> Optional[dict]:
        """Get a copy of the persisted document (testing helper)."""
        key = self._key(identity)
        if key not in self._documents:
            return None
        return deep_copy(self._documents[key])

    def put_document(self, identity: Hashable, data: dict) -> None:
        """Seed a persisted document (testing helper)."""
        self._documents[self._key(identity)] = deep_copy(data)

    def is_leased(self, identity: Hashable) -> bool:
        """Whether an identity's document is currently leased."""
        return self._key(identity) in self._leased

    @property
    def load_count(self) -> int:
        """Number of load attempts made."""
        return self._load_count
