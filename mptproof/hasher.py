"""
Node hashing: collapse -> encode -> hash, kept as separate pure steps.

`collapse` turns a node into the nested bytes/list structure that RLP
encodes: short node keys become their compact form and every child becomes
either its own collapsed structure (when its encoding is shorter than a hash)
or the Keccak-256 of that encoding. `encode_node` RLP-encodes the result and
`hash_node` hashes it.

There is no hasher object; nothing here keeps state between calls.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Union

import rlp
from eth_hash.auto import keccak
from rlp.exceptions import EncodingError, SerializationError

from .errors import EncodingFailure
from .nibbles import compact_encode
from .node import HASH_LENGTH, FullNode, HashNode, Node, ShortNode, ValueNode, unreachable

logger = logging.getLogger(__name__)

Collapsed = Union[bytes, List["Collapsed"]]

# keccak(rlp(b""))
EMPTY_ROOT = keccak(rlp.encode(b""))


def collapse(node: Node) -> Collapsed:
    if isinstance(node, ShortNode):
        return [compact_encode(node.key), _child_ref(node.val)]
    if isinstance(node, FullNode):
        return [_child_ref(child) for child in node.children]
    if isinstance(node, ValueNode):
        return node.value
    if isinstance(node, HashNode):
        return node.digest
    unreachable(node, EncodingFailure)


def _child_ref(child: Optional[Node]) -> Collapsed:
    if child is None:
        return b""
    return node_reference(child)


def node_reference(node: Node) -> Collapsed:
    """
    How a parent refers to `node`: the collapsed node itself when its
    encoding is shorter than 32 bytes, otherwise the hash of the encoding.
    Value and hash nodes are referenced by their raw bytes.
    """
    collapsed = collapse(node)
    if isinstance(node, (ValueNode, HashNode)):
        return collapsed
    enc = _encode(collapsed)
    if len(enc) < HASH_LENGTH:
        return collapsed
    return keccak(enc)


def encode_node(node: Node) -> bytes:
    return _encode(collapse(node))


def hash_node(node: Node) -> bytes:
    """
    Canonical hash identity of a node.

    Full and short nodes are always hashed, even when small enough to be
    embedded (the root of a trie is hashed the same way). A value node's
    identity is its raw payload and a hash node is already a hash.
    """
    if isinstance(node, (FullNode, ShortNode)):
        return keccak(encode_node(node))
    if isinstance(node, ValueNode):
        return node.value
    if isinstance(node, HashNode):
        return node.digest
    unreachable(node, EncodingFailure)


def _encode(collapsed: Collapsed) -> bytes:
    try:
        return rlp.encode(collapsed)
    except (EncodingError, SerializationError, TypeError) as exc:
        logger.error("cannot encode collapsed node: %s", exc)
        raise EncodingFailure(f"cannot encode node: {exc}") from exc
