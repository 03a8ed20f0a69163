"""
Path lookup into trees.

A path is an ordered sequence of keys, e.g. ``("Currencies", "Money")``.

Invariants:
    - resolve() never raises; a missing location is ABSENT
    - ABSENT is distinct from a stored False/0/None
    - The empty path resolves to the root itself
"""

from __future__ import annotations

from typing import Any, Hashable, Sequence

from .tree import ABSENT, is_tree

Path = Sequence[Hashable]


def normalize_path(path: Path | str) -> tuple[Hashable, ...]:
    """Turn a dotted string or a key sequence into a tuple of keys.

    Dotted strings only produce string keys; pass a sequence to address
    integer keys.

    >>> normalize_path("Currencies.Money")
    ('Currencies', 'Money')
    """
    if isinstance(path, str):
        return tuple(path.split(".")) if path else ()
    return tuple(path)


def resolve(root: Any, path: Path) -> Any:
    """Walk ``path`` from ``root`` one key at a time.

    Args:
        root: Tree to search
        path: Keys to follow

    Returns:
        The value at the path, or ABSENT as soon as a key is missing or a
        scalar is reached before the path is exhausted.
    """
    node = root
    for key in path:
        if not is_tree(node) or key not in node:
            return ABSENT
        node = node[key]
    return node


def touches(delta: Any, path: Path) -> bool:
    """Whether a diff tree records a change at, above or below ``path``.

    Walking stops early and reports a change when the delta holds a leaf
    for an ancestor of the path: that ancestor was replaced or removed
    wholesale, so everything below it changed too. Reaching the end of the
    path means the location itself (or something beneath it) changed.
    """
    if not path:
        return bool(delta)
    node = delta
    for key in path:
        if not is_tree(node):
            return True
        if key not in node:
            return False
        node = node[key]
    return True
