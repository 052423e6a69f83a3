"""
Inclusion proofs for a single key.

    compute_proof(trie, key)
        -> trie.prove(key, ProofRecorder())     nodes on the path, root first
        -> build_proof(...)                     annotate the branch taken at each full node
    verify_proof(proof, root_hash)              recovered key, terminal value, hash chain

Only nodes referenced by hash (and the root) are recorded; nodes embedded in
their parent travel inside the parent's encoding and are reached through
`Proof.hex_remainder`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Protocol, Sequence, Tuple

from .config import load_config
from .errors import (
    EmptyPath,
    HashChainBroken,
    KeyMismatch,
    KeyNotFound,
    MalformedKey,
    PrefixMismatch,
    UnexpectedNodeKind,
)
from .hasher import hash_node
from .nibbles import Nibbles, bytes_to_nibbles, nibbles_to_bytes
from .node import FullNode, HashNode, Node, PathStep, ShortNode, ValueNode, decode_node, format_node, unreachable

logger = logging.getLogger(__name__)


class NodeSink(Protocol):
    def put(self, hash: bytes, encoded: bytes) -> None:
        ...


class ProvableTrie(Protocol):
    def get(self, key: bytes) -> Optional[bytes]:
        ...

    def prove(self, key: bytes, sink: NodeSink) -> None:
        ...


@dataclass(frozen=True)
class Step:
    # FullNode or ShortNode found at this level
    node: PathStep
    # child followed, only for FullNode steps (16 means the value slot)
    index: Optional[int] = None
    # hash this node was fetched under
    hash: bytes = b""

    def link(self) -> Optional[Node]:
        """The reference this step followed towards the value."""
        node = self.node
        if isinstance(node, ShortNode):
            return node.val
        if isinstance(node, FullNode):
            if self.index is None:
                raise EmptyPath("full node step without branch index")
            return node.children[self.index]
        unreachable(node, UnexpectedNodeKind)

    def with_link(self, link: Node) -> PathStep:
        node = self.node
        if isinstance(node, ShortNode):
            return node.with_val(link)
        if isinstance(node, FullNode):
            if self.index is None:
                raise EmptyPath("full node step without branch index")
            return node.with_child(self.index, link)
        unreachable(node, UnexpectedNodeKind)


@dataclass(frozen=True)
class Proof:
    steps: Tuple[Step, ...]
    key: bytes
    value: bytes
    # nibbles below the last recorded step, inside embedded nodes
    hex_remainder: Nibbles = ()

    def recover_key(self) -> bytes:
        return recover_key(self)

    def to_dict(self) -> dict:
        return {
            "key": self.key.hex(),
            "value": self.value.hex(),
            "hex_remainder": bytes(self.hex_remainder).hex(),
            "steps": [
                {"kind": s.node.kind.name, "index": s.index, "hash": s.hash.hex()}
                for s in self.steps
            ],
        }


class ProofRecorder:
    """Sink handed to the trie's prove walk; keeps decoded nodes in arrival order."""

    def __init__(self) -> None:
        self._path: List[Step] = []

    def put(self, hash: bytes, encoded: bytes) -> None:
        node = decode_node(hash, encoded)
        self._path.append(Step(node=node, hash=bytes(hash)))

    def path(self) -> List[Step]:
        return list(self._path)

    def __len__(self) -> int:
        return len(self._path)


def compute_proof(trie: ProvableTrie, key: bytes) -> Proof:
    value = trie.get(key)
    if value is None:
        logger.info("no value for key %s", key.hex())
        raise KeyNotFound(f"no value found for key {key.hex()}", {"key": key})

    recorder = ProofRecorder()
    trie.prove(key, recorder)
    proof = build_proof(key, value, recorder.path())
    logger.debug("proof for %s: %d steps, remainder %s", key.hex(), len(proof.steps), bytes(proof.hex_remainder).hex())
    return proof


def build_proof(key: bytes, value: bytes, path: Sequence[Step], trace: Optional[bool] = None) -> Proof:
    """Annotate `path` with the child followed at each full node."""
    if trace is None:
        trace = load_config().trace_paths
    hexkey = bytes_to_nibbles(key)
    if trace:
        logger.debug("hexkey: %s (%r)", bytes(hexkey).hex(), key)

    steps = []
    for step in path:
        node = step.node
        if isinstance(node, ShortNode):
            if hexkey[: len(node.key)] != node.key:
                raise PrefixMismatch(
                    f"short node prefix {bytes(node.key).hex()} doesn't match key {bytes(hexkey).hex()}",
                    {"prefix": node.key, "remaining": hexkey},
                )
            if trace:
                logger.debug("short: %s", bytes(node.key).hex())
            hexkey = hexkey[len(node.key):]
            steps.append(replace(step, index=None))
        elif isinstance(node, FullNode):
            if not hexkey:
                raise EmptyPath("key exhausted before reaching a full node", {"key": key})
            if trace:
                logger.debug("next: %x", hexkey[0])
            steps.append(replace(step, index=hexkey[0]))
            hexkey = hexkey[1:]
        else:
            unreachable(node, UnexpectedNodeKind)

    return Proof(steps=tuple(steps), key=key, value=value, hex_remainder=hexkey)


def recover_key(proof: Proof) -> bytes:
    """Rebuild the queried key from the steps and the remainder alone."""
    hexkey: List[int] = []
    for step in proof.steps:
        node = step.node
        if isinstance(node, ShortNode):
            hexkey.extend(node.key)
        elif isinstance(node, FullNode):
            if step.index is None:
                raise EmptyPath("full node step without branch index")
            hexkey.append(step.index)
        else:
            unreachable(node, UnexpectedNodeKind)
    hexkey.extend(proof.hex_remainder)
    return nibbles_to_bytes(hexkey)


def verify_proof(proof: Proof, root_hash: bytes) -> None:
    """Raise unless `proof` shows `proof.key -> proof.value` under `root_hash`."""
    try:
        recovered = recover_key(proof)
    except MalformedKey as exc:
        raise KeyMismatch(f"cannot recover key from proof: {exc.message}", {"key": proof.key}) from exc
    if recovered != proof.key:
        logger.info("proof key %s doesn't match recovered %s", proof.key.hex(), recovered.hex())
        raise KeyMismatch("Proof.key doesn't match key recovered from the steps", {"key": proof.key, "recovered": recovered})
    if not proof.steps:
        raise HashChainBroken("proof has no steps")

    terminal = proof.steps[-1]
    _check_terminal(terminal.link(), proof.hex_remainder, proof.value)

    computed = hash_node(terminal.node)
    _expect(computed, terminal.hash, len(proof.steps) - 1)
    for level in range(len(proof.steps) - 2, -1, -1):
        parent = proof.steps[level]
        link = parent.link()
        if not isinstance(link, HashNode):
            raise HashChainBroken(
                f"step {level} doesn't reference the next step by hash",
                {"level": level, "link": format_node(link).strip()},
            )
        computed = hash_node(parent.with_link(HashNode(computed)))
        _expect(computed, parent.hash, level)

    if computed != bytes(root_hash):
        logger.info("proof root %s doesn't match %s", computed.hex(), bytes(root_hash).hex())
        raise HashChainBroken("computed root doesn't match", {"root": root_hash, "computed": computed})
    logger.debug("verified proof for %s against %s", proof.key.hex(), bytes(root_hash).hex())


def _expect(computed: bytes, recorded: bytes, level: int) -> None:
    if level == 0 and not recorded:
        # root addressed by value; the root_hash comparison covers it
        return
    if computed != recorded:
        logger.info("hash mismatch at step %d: computed %s, recorded %s", level, computed.hex(), recorded.hex())
        raise HashChainBroken(
            f"hash mismatch at step {level}",
            {"level": level, "computed": computed, "recorded": recorded},
        )


def _check_terminal(link: Optional[Node], remainder: Nibbles, value: bytes) -> None:
    # walk what is embedded below the last recorded node down to the value
    node = link
    path = remainder
    while True:
        if node is None:
            raise HashChainBroken("path ends in an empty slot", {"remaining": path})
        if isinstance(node, ValueNode):
            if path:
                raise HashChainBroken("value reached before the key was consumed", {"remaining": path})
            if node.value != value:
                raise HashChainBroken("value in proof doesn't match", {"value": value, "found": node.value})
            return
        if isinstance(node, ShortNode):
            if path[: len(node.key)] != node.key:
                raise HashChainBroken("embedded short node doesn't match the remainder", {"prefix": node.key, "remaining": path})
            path = path[len(node.key):]
            node = node.val
        elif isinstance(node, FullNode):
            if not path:
                raise HashChainBroken("remainder exhausted inside an embedded full node")
            node, path = node.children[path[0]], path[1:]
        elif isinstance(node, HashNode):
            raise HashChainBroken("proof is missing the node below the last step", {"hash": node.digest})
        else:
            unreachable(node, HashChainBroken)
