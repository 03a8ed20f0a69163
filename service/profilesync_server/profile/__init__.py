"""
Profile store abstraction for ProfileSync.

The profile store persists each identity's document across server restarts
and guarantees a single live lease per identity. This module provides the
protocol plus an in-memory backend for tests and local development.

Invariants:
    - load() takes the lease, release() persists and gives it back
    - Losing the lease to another server fires the release listeners
"""

from .base import (
    ProfileKey,
    ProfileNotLeasedError,
    ProfileStore,
    ProfileStoreError,
    ReleaseListener,
)
from .memory import InMemoryProfileStore

__all__ = [
    # Protocol and types
    "ProfileStore",
    "ProfileKey",
    "ReleaseListener",
    "ProfileStoreError",
    "ProfileNotLeasedError",
    # Implementations
    "InMemoryProfileStore",
]
