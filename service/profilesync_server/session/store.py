"""
Server-side session store for ProfileSync.

The SessionStore owns the authoritative tree of every connected identity.
It loads documents from the profile store on connect, runs application
mutations through each session's UpdateScheduler, and after every mutation
diffs, notifies local subscribers and replicates the diff to the client.

Lifecycle of one identity:

    create_session ──load──▶ reconcile ──▶ replicate full state ──▶ live
    live ──update(fn)──▶ [turn: snapshot, fn(data), diff, notify, send]
    live ──remove_session / forced release──▶ released

Invariants:
    - One live session per identity; concurrent create_session calls share
      a single load
    - A failed load kicks the identity and is never retried here
    - The session tree is only mutated inside a scheduler turn
    - get() fails with StaleSessionError instead of waiting forever when the
      identity goes away
    - Releasing a session runs as its final turn, after every mutation that
      was accepted before the disconnect

How to change safely:
    - Keep initial replication ahead of the session becoming visible, so
      the first diff a client sees is always the full state
    - Test connect/disconnect races with a delayed profile store
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Hashable

from sdk.profilesync_sdk.codec import Codec, MsgpackCodec
from sdk.profilesync_sdk.errors import (
    ProfileLoadError,
    SessionTimeoutError,
    StaleSessionError,
)
from sdk.profilesync_sdk.notifier import ChangeCallback, ChangeNotifier, Disconnect
from sdk.profilesync_sdk.path import Path
from sdk.profilesync_sdk.tree import Tree, deep_copy, diff, reconcile

from ..config import SessionConfig
from ..profile.base import ProfileStore
from ..transport.base import Transport
from .scheduler import Mutation, UpdateScheduler

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """A connected identity's live document.

    Attributes:
        identity: Session owner
        data: Authoritative tree (only mutate inside an update turn)
        notifier: Server-side change subscriptions
        scheduler: Serializes this session's updates
        active: False once the session was removed or released elsewhere
        created_at: Creation time (Unix seconds)
    """

    identity: Hashable
    data: Tree
    notifier: ChangeNotifier
    scheduler: UpdateScheduler = field(init=False, repr=False)
    active: bool = True
    created_at: float = field(default_factory=time.time)


class SessionStore:
    """Owns the authoritative tree of every connected identity.

    Example:
        >>> sessions = SessionStore(profile_store, transport, default_data={"Coins": 0})
        >>> await sessions.create_session(42)
        >>> async def earn(data):
        ...     data["Coins"] += 10
        >>> await sessions.update(42, earn)
        >>> await sessions.remove_session(42)
    """

    def __init__(
        self,
        profile_store: ProfileStore,
        transport: Transport,
        codec: Codec | None = None,
        default_data: Tree | None = None,
        config: SessionConfig | None = None,
        load_timeout: float | None = None,
    ) -> None:
        """Initialize the session store.

        Args:
            profile_store: Where documents are loaded from and released to
            transport: Carries diffs to clients
            codec: Diff payload encoder (MessagePack by default)
            default_data: Template reconciled into every loaded document
            config: Session lifecycle configuration
            load_timeout: Maximum seconds a document load may take
        """
        self.profile_store = profile_store
        self.transport = transport
        self.codec = codec or MsgpackCodec()
        self.default_data: Tree = deep_copy(default_data or {})
        self.config = config or SessionConfig()
        self.load_timeout = load_timeout

        self._sessions: dict[Hashable, Session] = {}
        self._loading: dict[Hashable, asyncio.Task] = {}
        self._connected: set[Hashable] = set()
        self._releasing: dict[Hashable, Session] = {}
        self._waiters: dict[Hashable, list[asyncio.Future]] = defaultdict(list)

        self._replicated_count = 0
        self._replication_errors = 0
        self._load_failures = 0

    # Lifecycle

    async def create_session(self, identity: Hashable) -> Session | None:
        """Load an identity's document and start replicating it.

        Calling this again while a load is in flight waits for that load.

        Returns:
            The live session, or None if the identity disconnected while
            its document was loading

        Raises:
            ProfileLoadError: If the document could not be loaded; the
                identity has been kicked
        """
        session = self._sessions.get(identity)
        if session is not None:
            return session

        self._connected.add(identity)

        task = self._loading.get(identity)
        if task is None:
            task = asyncio.get_running_loop().create_task(self._load(identity))
            self._loading[identity] = task
            task.add_done_callback(partial(self._forget_load, identity))

        return await asyncio.shield(task)

    def _forget_load(self, identity: Hashable, task: asyncio.Task) -> None:
        if self._loading.get(identity) is task:
            del self._loading[identity]

    async def _load(self, identity: Hashable) -> Session | None:
        previous = self._releasing.get(identity)
        if previous is not None:
            # reconnect: the old document must be persisted before reloading
            await previous.scheduler.wait_idle()

        logger.info("Loading profile", extra={"identity": str(identity)})

        try:
            data = await asyncio.wait_for(
                self.profile_store.load(identity),
                timeout=self.load_timeout,
            )
        except Exception as e:
            self._load_failures += 1
            logger.error(
                f"Profile load failed: {e}",
                exc_info=True,
                extra={"identity": str(identity)},
            )
            self._connected.discard(identity)
            self._fail_waiters(identity, "Profile could not be loaded")
            await self.transport.kick(identity, self.config.kick_message_load_failed)
            raise ProfileLoadError(f"Failed to load profile for {identity!r}: {e}", identity) from e

        reconcile(data, self.default_data)

        session = Session(identity=identity, data=data, notifier=ChangeNotifier(str(identity)))
        session.scheduler = UpdateScheduler(partial(self._run_turn, session), name=str(identity))
        self.profile_store.listen_to_release(identity, partial(self._on_released, session))

        await self._send(session, session.data, {})

        if not session.active:
            return None

        if identity not in self._connected:
            logger.info("Identity left during load, releasing", extra={"identity": str(identity)})
            session.active = False
            await self.profile_store.release(identity, session.data)
            return None

        self._sessions[identity] = session
        self._resolve_waiters(identity, session)

        logger.info("Session created", extra={"identity": str(identity), "keys": len(data)})
        return session

    async def remove_session(self, identity: Hashable) -> None:
        """Handle an identity disconnecting; release its document.

        Idempotent. Mutations accepted before the disconnect still run; the
        release is queued behind them as the session's last turn.
        """
        self._connected.discard(identity)
        self._fail_waiters(identity, "Identity disconnected")

        session = self._sessions.pop(identity, None)
        if session is None:
            return

        logger.info("Removing session", extra={"identity": str(identity)})
        session.active = False
        self._releasing[identity] = session

        async def release(data: Tree) -> None:
            try:
                session.notifier.clear()
                await self.profile_store.release(identity, data)
                logger.info("Session released", extra={"identity": str(identity)})
            finally:
                if self._releasing.get(identity) is session:
                    del self._releasing[identity]

        await session.scheduler.submit(release)

    async def _on_released(self, session: Session) -> None:
        """The document was opened elsewhere: treat it as a disconnect."""
        if not session.active:
            return

        identity = session.identity
        session.active = False
        session.notifier.clear()
        if self._sessions.get(identity) is session:
            del self._sessions[identity]

        self._connected.discard(identity)
        self._fail_waiters(identity, "Profile released elsewhere")

        logger.warning("Profile released elsewhere", extra={"identity": str(identity)})
        await self.transport.kick(identity, self.config.kick_message_released)

    async def close(self) -> None:
        """Release every session and wait for in-flight loads."""
        for identity in list(self._sessions):
            await self.remove_session(identity)

        loading = list(self._loading.values())
        self._connected.clear()
        if loading:
            await asyncio.gather(*loading, return_exceptions=True)

        for session in list(self._releasing.values()):
            await session.scheduler.wait_idle()

    # Access

    async def get(self, identity: Hashable, timeout: float | None = None) -> Session:
        """Get an identity's session, waiting while it loads.

        Args:
            identity: Session owner
            timeout: Seconds to wait (defaults to the configured timeout)

        Raises:
            StaleSessionError: If the identity is not connected, or
                disconnects or fails to load while waiting
            SessionTimeoutError: If the timeout elapsed
        """
        session = self._sessions.get(identity)
        if session is not None:
            return session

        if identity not in self._connected:
            raise StaleSessionError(f"Identity {identity!r} is not connected", identity)

        if timeout is None:
            timeout = self.config.get_timeout_seconds

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters[identity].append(future)
        try:
            session = await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise SessionTimeoutError(identity, timeout) from None
        finally:
            waiters = self._waiters.get(identity)
            if waiters and future in waiters:
                waiters.remove(future)

        # the session may have been removed between resolution and resumption
        self._check_live(identity, session)
        return session

    def _check_live(self, identity: Hashable, session: Session) -> None:
        if not session.active or self._sessions.get(identity) is not session:
            raise StaleSessionError(f"Session for {identity!r} is no longer live", identity)

    def peek(self, identity: Hashable) -> Session | None:
        """Get an identity's session without waiting."""
        return self._sessions.get(identity)

    async def update(self, identity: Hashable, mutation: Mutation) -> bool:
        """Mutate an identity's tree.

        ``mutation`` receives the tree and changes it in place; it may be a
        plain function or a coroutine function. It runs after every
        mutation submitted before it. Called from inside another mutation of
        the same identity, it is queued and this call returns immediately.

        Returns:
            True if the mutation ran before returning, False if it was queued

        Raises:
            StaleSessionError: If the identity is not connected, or its
                session was removed before the mutation could be accepted
        """
        session = await self.get(identity)
        self._check_live(identity, session)
        return await session.scheduler.submit(mutation)

    async def listen_to_value_changed(
        self,
        identity: Hashable,
        path: Path | str,
        callback: ChangeCallback,
    ) -> Disconnect:
        """Call ``callback`` whenever the value at ``path`` changes.

        Fires once right away when the path already holds a value. After a
        deletion the callback receives ABSENT.

        Returns:
            Disconnect function (idempotent)
        """
        session = await self.get(identity)
        self._check_live(identity, session)
        return session.notifier.subscribe(path, callback, session.data)

    # Turns

    async def _run_turn(self, session: Session, mutation: Mutation) -> None:
        before = deep_copy(session.data)
        try:
            result = mutation(session.data)
            if inspect.isawaitable(result):
                await result
        finally:
            added, removed = diff(before, session.data)
            if added or removed:
                logger.debug(
                    "Session changed",
                    extra={
                        "identity": str(session.identity),
                        "added_keys": len(added),
                        "removed_keys": len(removed),
                    },
                )
                session.notifier.notify(added, removed, session.data)
                await self._send(session, added, removed)

    async def _send(self, session: Session, added: Tree, removed: Tree) -> None:
        if not session.active:
            return
        try:
            await self.transport.send(
                session.identity,
                self.codec.encode(added),
                self.codec.encode(removed),
            )
            self._replicated_count += 1
        except Exception as e:
            self._replication_errors += 1
            logger.error(
                f"Failed to replicate diff: {e}",
                exc_info=True,
                extra={"identity": str(session.identity)},
            )

    # Waiters

    def _resolve_waiters(self, identity: Hashable, session: Session) -> None:
        for future in self._waiters.pop(identity, []):
            if not future.done():
                future.set_result(session)

    def _fail_waiters(self, identity: Hashable, reason: str) -> None:
        for future in self._waiters.pop(identity, []):
            if not future.done():
                future.set_exception(StaleSessionError(reason, identity))

    # Introspection

    def identities(self) -> list[Hashable]:
        """Identities with a live session."""
        return list(self._sessions)

    def __contains__(self, identity: Hashable) -> bool:
        return identity in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    @property
    def stats(self) -> dict[str, Any]:
        """Get session store statistics."""
        return {
            "sessions": len(self._sessions),
            "loading": len(self._loading),
            "releasing": len(self._releasing),
            "replicated_count": self._replicated_count,
            "replication_errors": self._replication_errors,
            "load_failures": self._load_failures,
        }
