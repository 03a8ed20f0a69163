"""
Tree diffing and merging for ProfileSync.

A Tree is a plain ``dict`` keyed by strings or integers whose values are
either scalars (numbers, strings, booleans) or nested Trees. A value is a
sub-tree exactly when it is a ``dict``; everything else is a leaf.

This module provides:
- diff(): the sparse (added, removed) delta between two snapshots
- merge(): apply a delta to a live tree in place
- deep_copy(): snapshot a tree before it is mutated
- reconcile(): fill missing keys from a default-data template

Invariants:
    - diff() and merge() are exact inverses:
      merge(deep_copy(a), *diff(a, b)) == b
    - diff(a, a) == ({}, {})
    - merge() is idempotent for the same (added, removed) pair
    - Removed entries hold REMOVED (True), never the old value
    - Neither function keeps references into its inputs

How to change safely:
    - Any change to diff() needs the matching change in merge()
    - Run the round-trip tests in tests/unit/test_tree.py
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Dict, Hashable, Tuple

Tree = Dict[Hashable, Any]

# Marker stored in a removed-tree for a key that no longer exists.
REMOVED = True


class _Absent(Enum):
    ABSENT = "absent"

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent.ABSENT
"""Result of looking up a path that does not exist.

Distinct from every stored value, including ``False``, ``0`` and ``None``.
Compare with ``is``.
"""


def is_tree(value: Any) -> bool:
    """Whether a value is a nested Tree rather than a scalar."""
    return isinstance(value, dict)


def deep_copy(value: Any) -> Any:
    """Copy a tree (or scalar) so later mutation of either side is invisible."""
    if not is_tree(value):
        return value
    return {key: deep_copy(child) for key, child in value.items()}


def _same_scalar(previous: Any, current: Any) -> bool:
    # True == 1 in Python, but a bool replacing an int is still a change
    if previous is current:
        return True
    if type(previous) is not type(current):
        return False
    if isinstance(previous, float) and math.isnan(previous) and math.isnan(current):
        return True
    return previous == current


def diff(previous: Tree, current: Tree) -> Tuple[Tree, Tree]:
    """Compute the structural delta between two snapshots.

    Args:
        previous: Tree before the change
        current: Tree after the change

    Returns:
        (added, removed) where ``added`` holds new or changed values and
        ``removed`` holds REMOVED for deleted keys. When a sub-tree stays a
        sub-tree only its nested delta is recorded. Both results are
        maximally sparse.

    Example:
        >>> diff({"Currencies": {"Money": 10}}, {"Currencies": {"Money": 15}})
        ({'Currencies': {'Money': 15}}, {})
    """
    added: Tree = {}
    removed: Tree = {}

    for key, before in previous.items():
        if key not in current:
            removed[key] = REMOVED
            continue

        after = current[key]
        if is_tree(before) and is_tree(after):
            nested_added, nested_removed = diff(before, after)
            if nested_added:
                added[key] = nested_added
            if nested_removed:
                removed[key] = nested_removed
        elif is_tree(before) or is_tree(after) or not _same_scalar(before, after):
            added[key] = deep_copy(after)

    for key, after in current.items():
        if key not in previous:
            added[key] = deep_copy(after)

    return added, removed


def merge(target: Tree, added: Tree, removed: Tree) -> None:
    """Apply an (added, removed) delta to ``target`` in place.

    Added is applied completely before Removed, so a sub-tree that shows up
    in both (a sibling changed while another key was deleted) ends up right.

    Args:
        target: Live tree to mutate
        added: Values to set, recursing where both sides are sub-trees
        removed: Keys to delete, recursing where both sides are sub-trees
    """
    for key, value in added.items():
        if is_tree(value) and is_tree(target.get(key)):
            merge(target[key], value, {})
        else:
            target[key] = deep_copy(value)

    for key, value in removed.items():
        if is_tree(value) and is_tree(target.get(key)):
            merge(target[key], {}, value)
        else:
            target.pop(key, None)


def reconcile(target: Tree, template: Tree) -> None:
    """Fill keys missing from ``target`` with defaults from ``template``.

    Existing keys are never overwritten. Sub-trees present on both sides are
    reconciled recursively.
    """
    for key, default in template.items():
        if key not in target:
            target[key] = deep_copy(default)
        elif is_tree(default) and is_tree(target[key]):
            reconcile(target[key], default)
