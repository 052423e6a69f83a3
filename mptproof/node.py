"""
Node model of the hexary trie and decoding of stored node encodings.

    Node     = FullNode | ShortNode | ValueNode | HashNode
    PathStep = FullNode | ShortNode

Nodes are immutable; "modifying" one returns a new node.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Never, NoReturn, Optional, Tuple, Type, Union

import rlp
from rlp.exceptions import DecodingError

from .errors import MalformedKey, MalformedNode, ProofError
from .nibbles import Nibbles, compact_decode, has_terminator

HASH_LENGTH = 32
BRANCH_WIDTH = 17
VALUE_SLOT = 16


class NodeType(Enum):
    FULL = 1
    SHORT = 2
    VALUE = 3
    HASH = 4


@dataclass(frozen=True)
class FullNode:
    children: Tuple[Optional["Node"], ...] = (None,) * BRANCH_WIDTH

    kind: ClassVar[NodeType] = NodeType.FULL

    def __post_init__(self) -> None:
        if len(self.children) != BRANCH_WIDTH:
            raise ValueError(f"full node needs {BRANCH_WIDTH} slots, got {len(self.children)}")
        value = self.children[VALUE_SLOT]
        if value is not None and not isinstance(value, ValueNode):
            raise ValueError(f"full node value slot holds a {type(value).__name__}, not a ValueNode")

    @property
    def value(self) -> Optional["Node"]:
        return self.children[VALUE_SLOT]

    def with_child(self, index: int, child: Optional["Node"]) -> "FullNode":
        children = list(self.children)
        children[index] = child
        return FullNode(tuple(children))


@dataclass(frozen=True)
class ShortNode:
    key: Nibbles
    val: "Node"

    kind: ClassVar[NodeType] = NodeType.SHORT

    def with_val(self, val: "Node") -> "ShortNode":
        return ShortNode(self.key, val)


@dataclass(frozen=True)
class ValueNode:
    value: bytes

    kind: ClassVar[NodeType] = NodeType.VALUE


@dataclass(frozen=True)
class HashNode:
    digest: bytes

    kind: ClassVar[NodeType] = NodeType.HASH


Node = Union[FullNode, ShortNode, ValueNode, HashNode]
PathStep = Union[FullNode, ShortNode]


def decode_node(hash: bytes, buf: bytes) -> PathStep:
    """Decode the stored encoding of a node fetched under `hash`."""
    if not buf:
        raise MalformedNode("unexpected end of buffer", {"hash": hash})
    try:
        item = rlp.decode(buf)
    except DecodingError as exc:
        raise MalformedNode(f"invalid RLP: {exc}", {"hash": hash}) from exc
    if isinstance(item, bytes):
        raise MalformedNode("node encoding is not a list", {"hash": hash})
    try:
        return _decode_item(item)
    except MalformedNode as exc:
        raise MalformedNode(exc.message, {**exc.data, "hash": hash}) from exc


def _decode_item(item) -> PathStep:
    if len(item) == 2:
        return _decode_short(item)
    if len(item) == BRANCH_WIDTH:
        return _decode_full(item)
    raise MalformedNode(f"invalid number of list elements: {len(item)}")


def _decode_short(item) -> ShortNode:
    kbuf, rest = item
    if not isinstance(kbuf, bytes):
        raise MalformedNode("short node key is not a string")
    try:
        key = compact_decode(kbuf)
    except MalformedKey as exc:
        raise MalformedNode(exc.message, exc.data) from exc
    if has_terminator(key):
        # leaf: the second item is the value itself
        if not isinstance(rest, bytes):
            raise MalformedNode("leaf value is not a string")
        return ShortNode(key, ValueNode(rest))
    ref = _decode_ref(rest)
    if ref is None:
        raise MalformedNode("extension node without child")
    return ShortNode(key, ref)


def _decode_full(item) -> FullNode:
    children = [_decode_ref(elem) for elem in item[:VALUE_SLOT]]
    value = item[VALUE_SLOT]
    if not isinstance(value, bytes):
        raise MalformedNode("full node value is not a string")
    children.append(ValueNode(value) if value else None)
    return FullNode(tuple(children))


def _decode_ref(elem) -> Optional[Node]:
    if not isinstance(elem, bytes):
        size = len(rlp.encode(elem))
        if size > HASH_LENGTH:
            raise MalformedNode(f"oversized embedded node (size is {size} bytes, want size < {HASH_LENGTH})")
        return _decode_item(elem)
    if len(elem) == 0:
        return None
    if len(elem) == HASH_LENGTH:
        return HashNode(elem)
    raise MalformedNode(f"invalid RLP string size {len(elem)} (want 0 or {HASH_LENGTH})")


def format_node(node: Optional[Node], ind: str = "") -> str:
    """Human readable rendering, used in debug logs."""
    if node is None:
        return "<nil> "
    if isinstance(node, FullNode):
        parts = [f"[\n{ind}  "]
        for i, child in enumerate(node.children):
            label = f"{i:x}" if i < VALUE_SLOT else "[17]"
            parts.append(f"{label}: {format_node(child, ind + '  ')}")
        parts.append(f"\n{ind}] ")
        return "".join(parts)
    if isinstance(node, ShortNode):
        return "{%s: %s} " % (bytes(node.key).hex(), format_node(node.val, ind + "  "))
    if isinstance(node, HashNode):
        return f"<{node.digest.hex()}> "
    if isinstance(node, ValueNode):
        return f"{node.value.hex()} "
    raise TypeError(f"not a trie node: {type(node).__name__}")


def unreachable(node: Never, error: Type[ProofError]) -> NoReturn:
    """Exhaustiveness guard for dispatch over `Node`; type checkers flag missed variants."""
    raise error(f"unexpected node kind: {type(node).__name__}")
