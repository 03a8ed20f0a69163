"""
ProfileSync SDK - diff-based replication of per-session state trees.

This package holds the replication core shared by server and client:
- tree: diff/merge of nested key-value trees
- path: path lookup (with a distinct ABSENT result)
- notifier: path-based change notification
- codec: binary encoding of diff payloads
- mirror: client-side MirrorStore built only from received diffs

Example:
    >>> from profilesync_sdk import MirrorStore
    >>>
    >>> mirror = MirrorStore()
    >>> mirror.attach(channel)
    >>> disconnect = mirror.listen_to_value_changed(
    ...     ["Currencies", "Money"], lambda money: print(money)
    ... )
    >>> data = await mirror.get()

Invariants:
    - merge(copy(a), *diff(a, b)) == b
    - A mirror only changes when a diff arrives

Version: 0.1.0
"""

__version__ = "0.1.0"

from .codec import Codec, MsgpackCodec
from .errors import (
    CodecError,
    MirrorNotReadyError,
    ProfileLoadError,
    ProfileSyncError,
    SessionTimeoutError,
    StaleSessionError,
)
from .mirror import Channel, MirrorStore
from .notifier import ChangeNotifier, Subscription
from .path import normalize_path, resolve, touches
from .tree import ABSENT, REMOVED, Tree, deep_copy, diff, is_tree, merge, reconcile

__all__ = [
    # Version
    "__version__",
    # Tree
    "Tree",
    "ABSENT",
    "REMOVED",
    "diff",
    "merge",
    "deep_copy",
    "reconcile",
    "is_tree",
    # Path
    "resolve",
    "touches",
    "normalize_path",
    # Notification
    "ChangeNotifier",
    "Subscription",
    # Encoding
    "Codec",
    "MsgpackCodec",
    # Mirror
    "MirrorStore",
    "Channel",
    # Errors
    "ProfileSyncError",
    "ProfileLoadError",
    "StaleSessionError",
    "SessionTimeoutError",
    "MirrorNotReadyError",
    "CodecError",
]
