"""
ProfileSync Test Suite.

This package contains:
- unit/: Unit tests (tree diffing, notification, scheduling, backends)
- integration/: Integration tests (SessionStore, replication to mirrors, HTTP API)
"""
