"""
ProfileSync Server - server-authoritative, diff-based state replication.

This package keeps one mutable document (a nested key-value tree) per
connected identity and pushes only the changes to that identity's client:

    ┌──────────────┐  update(fn)  ┌────────────────┐  diff  ┌─────────────┐
    │ Application  │─────────────▶│ UpdateScheduler│───────▶│  Transport  │
    │    code      │              │  (per session) │        │  send()     │
    └──────────────┘              └───────┬────────┘        └──────┬──────┘
                                          │                        │
                                          ▼                        ▼
                                 ┌────────────────┐       ┌────────────────┐
                                 │ ChangeNotifier │       │  MirrorStore   │
                                 │ (server side)  │       │ (client, SDK)  │
                                 └────────────────┘       └────────────────┘

    Documents are loaded from / released to a ProfileStore on
    connect / disconnect.

Invariants:
    - A session's tree is only mutated inside its UpdateScheduler turn
    - Mutations of one session run one at a time, in submission order
    - Every mutation is diffed against the true previous state
    - Sessions never block each other

How to change safely:
    - Keep diff() and merge() exact inverses (see profilesync_sdk.tree)
    - Test reentrant updates whenever the scheduler changes

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
