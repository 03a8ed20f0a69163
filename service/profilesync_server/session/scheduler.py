"""
Per-session update serialization.

The UpdateScheduler guarantees that a session's mutations run one at a
time and in submission order, even when a mutation submits another
mutation (reentrancy) or several tasks submit concurrently.

State machine:

    IDLE ──submit──▶ RUNNING ──queue empty──▶ IDLE
                       │  ▲
                       └──┘ queue non-empty: pop front, run turn

Invariants:
    - At most one turn in flight per scheduler
    - Turns run strictly FIFO; an accepted mutation is never dropped
    - submit() only blocks the caller that became the drainer
    - A failing turn is logged and the drain continues
    - If the drainer is cancelled mid-drain, the remaining queue is handed to
      a background task instead of being stranded

How to change safely:
    - Never run a mutation inline while RUNNING; the diff of the in-flight
      turn would be computed against the wrong previous state
    - Test reentrant and concurrent submission whenever this changes
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Mutation = Callable[..., Any]
Turn = Callable[[Mutation], Awaitable[None]]


class SchedulerState(Enum):
    """Scheduler states."""

    IDLE = "idle"
    RUNNING = "running"


class UpdateScheduler:
    """Runs mutations for one session one at a time, in order.

    The scheduler knows nothing about trees; it calls ``turn(mutation)``
    for each accepted mutation and the owner does snapshot, mutate, diff
    and replicate inside that turn.

    Example:
        >>> scheduler = UpdateScheduler(session_turn, name="42")
        >>> await scheduler.submit(lambda data: data.update(Coins=5))
        True
    """

    def __init__(self, turn: Turn, name: str = "") -> None:
        """Initialize the scheduler.

        Args:
            turn: Coroutine function running one mutation to completion
            name: Label used in logs
        """
        self.name = name
        self._turn = turn
        self._queue: deque[Mutation] = deque()
        self._state = SchedulerState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._background: set[asyncio.Task] = set()

        self._submitted_count = 0
        self._executed_count = 0
        self._fault_count = 0

    async def submit(self, mutation: Mutation) -> bool:
        """Accept a mutation.

        When idle, the caller becomes the drainer: it runs this mutation and
        everything queued behind it before returning. When a turn is already
        in flight the mutation is queued and the call returns at once.

        Args:
            mutation: Callable run inside a turn

        Returns:
            True if this call drained the queue, False if it only queued
        """
        self._queue.append(mutation)
        self._submitted_count += 1

        if self._state is SchedulerState.RUNNING:
            logger.debug(
                "Mutation queued",
                extra={"scheduler": self.name, "queue_depth": len(self._queue)},
            )
            return False

        await self._drain()
        return True

    async def _drain(self) -> None:
        self._state = SchedulerState.RUNNING
        self._idle.clear()

        try:
            while self._queue:
                mutation = self._queue.popleft()
                await self._execute(mutation)
        finally:
            if self._queue:
                logger.warning(
                    "Drain interrupted, resuming in background",
                    extra={"scheduler": self.name, "queue_depth": len(self._queue)},
                )
                task = asyncio.get_running_loop().create_task(self._drain())
                self._background.add(task)
                task.add_done_callback(self._background.discard)
            else:
                self._state = SchedulerState.IDLE
                self._idle.set()

    async def _execute(self, mutation: Mutation) -> None:
        try:
            await self._turn(mutation)
            self._executed_count += 1
        except Exception:
            self._fault_count += 1
            logger.exception("Mutation failed", extra={"scheduler": self.name})

    async def wait_idle(self) -> None:
        """Wait until every accepted mutation has run."""
        await self._idle.wait()

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state."""
        return self._state

    @property
    def pending(self) -> int:
        """Number of mutations waiting behind the in-flight turn."""
        return len(self._queue)

    @property
    def stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "state": self._state.value,
            "pending": len(self._queue),
            "submitted_count": self._submitted_count,
            "executed_count": self._executed_count,
            "fault_count": self._fault_count,
        }
