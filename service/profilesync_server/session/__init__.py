"""
Session module for ProfileSync - live documents and update serialization.

This module handles:
- SessionStore: the authoritative tree of every connected identity
- UpdateScheduler: one-at-a-time, in-order execution of each session's
  mutations

Invariants:
    - Mutations of one session never overlap
    - Sessions never wait on each other
    - Every accepted mutation runs exactly once
"""

from .scheduler import Mutation, SchedulerState, UpdateScheduler
from .store import Session, SessionStore

__all__ = [
    "SessionStore",
    "Session",
    "UpdateScheduler",
    "SchedulerState",
    "Mutation",
]
