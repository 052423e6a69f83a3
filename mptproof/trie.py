"""
In-memory hexary Merkle-Patricia trie.

Serves as the storage collaborator for proofs: `prove()` walks a key and
hands every node a verifier needs to a sink as `(hash, encoded)` pairs.
`db` is any mutable mapping of node hash -> encoded node; `commit()` fills
it, after which lookups resolve nodes through it.
"""

from __future__ import annotations

import logging
from typing import MutableMapping, Optional

from eth_hash.auto import keccak

from .errors import EncodingFailure, MissingNode, UnexpectedNodeKind
from .hasher import EMPTY_ROOT, encode_node, hash_node
from .nibbles import Nibbles, bytes_to_nibbles, prefix_len
from .node import HASH_LENGTH, FullNode, HashNode, Node, ShortNode, ValueNode, decode_node, unreachable
from .proof import NodeSink

logger = logging.getLogger(__name__)


class Trie():
    def __init__(self, db: Optional[MutableMapping[bytes, bytes]] = None, root: Optional[bytes] = None):
        if db is None:
            db = {}
        self.db = db

        self.root: Optional[Node] = None
        if root is not None and root != EMPTY_ROOT:
            self.root = HashNode(bytes(root))

    def update(self, key: bytes, value: bytes) -> None:
        if not value:
            raise ValueError("empty values can't be stored (deletion is not supported)")
        self.root = self._insert(self.root, bytes_to_nibbles(key), ValueNode(bytes(value)))

    def get(self, key: bytes) -> Optional[bytes]:
        node = self.root
        path = bytes_to_nibbles(key)
        while node is not None:
            if isinstance(node, ValueNode):
                return node.value
            if isinstance(node, ShortNode):
                if path[: len(node.key)] != node.key:
                    return None
                path = path[len(node.key):]
                node = node.val
            elif isinstance(node, FullNode):
                if not path:
                    return None
                node, path = node.children[path[0]], path[1:]
            elif isinstance(node, HashNode):
                node = self._resolve(node)
            else:
                unreachable(node, UnexpectedNodeKind)
        return None

    def hash(self) -> bytes:
        if self.root is None:
            return EMPTY_ROOT
        return hash_node(self.root)

    def commit(self) -> bytes:
        """Write all hashed nodes to `db` and return the root hash."""
        if self.root is None:
            return EMPTY_ROOT
        if isinstance(self.root, HashNode):
            return self.root.digest
        before = len(self.db)
        committed = self._commit(self.root, force=True)
        if not isinstance(committed, HashNode):
            raise EncodingFailure("root did not commit to a hash reference", {"node": type(committed).__name__})
        self.root = committed
        logger.debug("committed trie %s (%d new nodes)", committed.digest.hex(), len(self.db) - before)
        return committed.digest

    def prove(self, key: bytes, sink: NodeSink) -> None:
        """
        Hand `sink` the nodes on the path of `key`, root first.

        The root is always included; below it only nodes that their parent
        references by hash, since embedded nodes are part of the parent's
        encoding. An absent key yields the path up to where it diverges.
        """
        path = bytes_to_nibbles(key)
        nodes = []
        node = self.root
        while path and node is not None:
            if isinstance(node, ShortNode):
                if path[: len(node.key)] != node.key:
                    break
                nodes.append(node)
                path = path[len(node.key):]
                node = node.val
            elif isinstance(node, FullNode):
                nodes.append(node)
                node, path = node.children[path[0]], path[1:]
            elif isinstance(node, HashNode):
                node = self._resolve(node)
            elif isinstance(node, ValueNode):
                break
            else:
                unreachable(node, UnexpectedNodeKind)

        for i, n in enumerate(nodes):
            enc = encode_node(n)
            if i == 0 or len(enc) >= HASH_LENGTH:
                sink.put(keccak(enc), enc)

    def _insert(self, node: Optional[Node], key: Nibbles, value: Node) -> Node:
        if not key:
            return value
        if node is None:
            return ShortNode(key, value)
        if isinstance(node, ShortNode):
            match = prefix_len(key, node.key)
            if match == len(node.key):
                return node.with_val(self._insert(node.val, key[match:], value))
            # split: branch where the paths diverge
            branch = FullNode()
            branch = branch.with_child(node.key[match], self._insert(None, node.key[match + 1:], node.val))
            branch = branch.with_child(key[match], self._insert(None, key[match + 1:], value))
            if match == 0:
                return branch
            return ShortNode(key[:match], branch)
        if isinstance(node, FullNode):
            return node.with_child(key[0], self._insert(node.children[key[0]], key[1:], value))
        if isinstance(node, HashNode):
            return self._insert(self._resolve(node), key, value)
        if isinstance(node, ValueNode):
            raise UnexpectedNodeKind("value node in the middle of a key path")
        unreachable(node, UnexpectedNodeKind)

    def _commit(self, node: Node, force: bool = False) -> Node:
        if isinstance(node, ShortNode):
            node = node.with_val(self._commit(node.val))
        elif isinstance(node, FullNode):
            node = FullNode(tuple(None if c is None else self._commit(c) for c in node.children))
        else:
            return node

        enc = encode_node(node)
        if len(enc) < HASH_LENGTH and not force:
            return node
        digest = keccak(enc)
        self.db[digest] = enc
        return HashNode(digest)

    def _resolve(self, node: HashNode) -> Node:
        enc = self.db.get(node.digest)
        if enc is None:
            raise MissingNode(f"missing trie node {node.digest.hex()}", {"hash": node.digest})
        return decode_node(node.digest, enc)
