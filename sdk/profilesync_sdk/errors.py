"""
Error types for ProfileSync.

This module defines the exception types shared by the server and the mirror:
- ProfileSyncError: Base exception
- ProfileLoadError: The profile store could not produce a document
- StaleSessionError: A session went away while someone was waiting on it
- SessionTimeoutError: Waiting for a session took too long
- MirrorNotReadyError: The mirror never received its initial state
- CodecError: A diff payload could not be encoded or decoded

Invariants:
    - All errors inherit from ProfileSyncError
    - A missing path is never an error (see tree.ABSENT)
    - Errors carry the identity they concern when there is one
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, Optional


class ProfileSyncError(Exception):
    """Base exception for all ProfileSync errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "PROFILESYNC_ERROR"
        self.details = details or {}


class ProfileLoadError(ProfileSyncError):
    """The profile store could not load a document.

    Fatal for the identity: the connection is terminated and the load is
    not retried.
    """

    def __init__(self, message: str, identity: Hashable) -> None:
        super().__init__(
            message,
            code="LOAD_FAILED",
            details={"identity": str(identity)},
        )
        self.identity = identity


class StaleSessionError(ProfileSyncError):
    """The session is gone.

    Raised when:
    - The identity disconnected while a caller was waiting for its session
    - The session was force-released or failed to load during the wait
    - The identity is not connected at all
    """

    def __init__(self, message: str, identity: Hashable) -> None:
        super().__init__(
            message,
            code="STALE_SESSION",
            details={"identity": str(identity)},
        )
        self.identity = identity


class SessionTimeoutError(ProfileSyncError):
    """Timed out waiting for a session to become available."""

    def __init__(self, identity: Hashable, timeout: float) -> None:
        super().__init__(
            f"Timed out after {timeout}s waiting for session {identity!r}",
            code="SESSION_TIMEOUT",
            details={"identity": str(identity), "timeout": timeout},
        )
        self.identity = identity
        self.timeout = timeout


class MirrorNotReadyError(ProfileSyncError):
    """The mirror did not receive its initial state in time."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"No state received after {timeout}s",
            code="MIRROR_NOT_READY",
            details={"timeout": timeout},
        )
        self.timeout = timeout


class CodecError(ProfileSyncError):
    """A tree could not be encoded, or a payload could not be decoded."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CODEC_ERROR")
