"""
Binary encoding of diff payloads.

Diffs travel over the transport as two byte strings (added, removed).
MessagePack is the default wire format because, unlike JSON, it keeps
integer map keys as integers.

Invariants:
    - decode(encode(tree)) == tree for every valid tree
    - Only dict/str/int/float/bool/None values are supported
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import msgpack

from .errors import CodecError
from .tree import Tree


@runtime_checkable
class Codec(Protocol):
    """Converts a tree to and from bytes."""

    def encode(self, tree: Tree) -> bytes:
        ...

    def decode(self, payload: bytes) -> Tree:
        ...


class MsgpackCodec:
    """MessagePack implementation of Codec."""

    def encode(self, tree: Tree) -> bytes:
        """Encode a tree.

        Raises:
            CodecError: If the tree holds a value MessagePack cannot represent
        """
        try:
            return msgpack.packb(tree, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            raise CodecError(f"Failed to encode tree: {e}") from e

    def decode(self, payload: bytes) -> Tree:
        """Decode a payload produced by encode().

        Raises:
            CodecError: If the payload is malformed or is not a map
        """
        try:
            tree = msgpack.unpackb(payload, raw=False, strict_map_key=False)
        except (msgpack.ExtraData, msgpack.FormatError, msgpack.StackError, TypeError, ValueError) as e:
            raise CodecError(f"Failed to decode payload: {e}") from e

        if not isinstance(tree, dict):
            raise CodecError(f"Payload is not a tree: {type(tree).__name__}")
        return tree
