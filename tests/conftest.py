import random

import pytest

from mptproof.nibbles import bytes_to_nibbles
from mptproof.node import FullNode, HashNode, ShortNode, ValueNode
from mptproof.trie import Trie


def short_node_value(key, value):
    return ShortNode(bytes_to_nibbles(key.encode()), ValueNode(value.encode()))


def short_node_hex(hkey, hval):
    return ShortNode(tuple(bytes.fromhex(hkey)), ValueNode(bytes.fromhex(hval)))


def hash_ref(hexstr):
    return HashNode(bytes.fromhex(hexstr))


def sparse_full_node(kids):
    node = FullNode()
    for idx, child in kids.items():
        node = node.with_child(idx, child)
    return node


def build_trie(items):
    """Trie with key == value for every item, committed."""
    tr = Trie()
    for s in items:
        b = s.encode() if isinstance(s, str) else s
        tr.update(b, b)
    root = tr.commit()
    return tr, root


def random_trie(seed, n):
    rng = random.Random(seed)
    tr = Trie()
    vals = []
    for i in range(100):
        k = bytes([i]).rjust(32, b"\x00")
        k2 = bytes([i + 10]).rjust(32, b"\x00")
        tr.update(k, bytes([i]))
        tr.update(k2, bytes([i]))
        vals.append((k, bytes([i])))
        vals.append((k2, bytes([i])))
    for _ in range(n):
        k, v = rng.randbytes(32), rng.randbytes(20)
        tr.update(k, v)
        vals.append((k, v))
    tr.commit()
    # later updates of a repeated key win
    latest = dict(vals)
    return tr, [(k, latest[k]) for k, _ in vals]


@pytest.fixture
def two_levels():
    return build_trie(["a", "B", "7", "ASDF", "    000    ", "fooBAR"])
