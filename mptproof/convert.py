"""
Conversion of trie proofs into generic (ICS-23 style) existence proofs.

A consumer that knows nothing about this trie's node layout gets the key,
the value and a leaf operation describing how the leaf hash is rebuilt:

    keccak256(prefix || rlp_length(value) || value)

Only single-step proofs ending in a leaf short node convert today. Turning
intermediate steps into inner operations is not implemented and raises
`UnsupportedProofShape` instead of producing a partial proof.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Tuple

import rlp

from .errors import HashChainBroken, UnsupportedProofShape
from .hasher import encode_node
from .node import FullNode, ShortNode, ValueNode
from .proof import Proof, Step

logger = logging.getLogger(__name__)


class HashOp(IntEnum):
    NO_HASH = 0
    SHA256 = 1
    SHA512 = 2
    KECCAK = 3
    RIPEMD160 = 4
    BITCOIN = 5


class LengthOp(IntEnum):
    NO_PREFIX = 0
    VAR_PROTO = 1
    VAR_RLP = 2
    FIXED32_BIG = 3
    FIXED32_LITTLE = 4
    FIXED64_BIG = 5
    FIXED64_LITTLE = 6
    REQUIRE_32_BYTES = 7
    REQUIRE_64_BYTES = 8


@dataclass(frozen=True)
class LeafOp:
    hash: HashOp
    prehash_key: HashOp
    prehash_value: HashOp
    length: LengthOp
    prefix: bytes = b""

    def to_dict(self) -> dict:
        return {
            "hash": self.hash.name,
            "prehash_key": self.prehash_key.name,
            "prehash_value": self.prehash_value.name,
            "length": self.length.name,
            "prefix": self.prefix.hex(),
        }


@dataclass(frozen=True)
class InnerOp:
    hash: HashOp
    prefix: bytes = b""
    suffix: bytes = b""

    def to_dict(self) -> dict:
        return {"hash": self.hash.name, "prefix": self.prefix.hex(), "suffix": self.suffix.hex()}


@dataclass(frozen=True)
class ExistenceProof:
    key: bytes
    value: bytes
    leaf: LeafOp
    path: Tuple[InnerOp, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "key": self.key.hex(),
            "value": self.value.hex(),
            "leaf": self.leaf.to_dict(),
            "path": [op.to_dict() for op in self.path],
        }


def convert_proof(proof: Proof) -> ExistenceProof:
    if not proof.steps:
        raise UnsupportedProofShape("proof has no steps")
    *path, last = proof.steps

    leaf = leaf_op(last, proof.value)
    if path:
        raise UnsupportedProofShape(
            f"conversion of {len(path)} intermediate step(s) is not implemented",
            {"steps": len(proof.steps)},
        )
    logger.debug("converted proof for %s", proof.key.hex())
    return ExistenceProof(key=proof.key, value=proof.value, leaf=leaf)


def leaf_op(step: Step, value: bytes) -> LeafOp:
    """Leaf operation for a terminal step holding `value`."""
    node = step.node
    if isinstance(node, FullNode):
        raise UnsupportedProofShape("not implemented for a terminal full node")
    if not isinstance(node, ShortNode):
        raise UnsupportedProofShape(f"unexpected terminal node: {type(node).__name__}")
    if not isinstance(node.val, ValueNode):
        raise UnsupportedProofShape("terminal short node doesn't hold a value")

    bz = encode_node(node)
    suffix = rlp.encode(value)
    if not bz.endswith(suffix):
        raise HashChainBroken("terminal leaf doesn't hold the proven value", {"encoded": bz, "value": value})
    return LeafOp(
        hash=HashOp.KECCAK,
        prehash_key=HashOp.NO_HASH,
        prehash_value=HashOp.NO_HASH,
        length=LengthOp.VAR_RLP,
        prefix=bz[: len(bz) - len(suffix)],
    )
