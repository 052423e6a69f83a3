from dataclasses import replace

import pytest

from mptproof.errors import (
    EmptyPath,
    HashChainBroken,
    KeyMismatch,
    KeyNotFound,
    MalformedNode,
    PrefixMismatch,
    UnexpectedNodeKind,
)
from mptproof.hasher import encode_node
from mptproof.nibbles import bytes_to_nibbles
from mptproof.node import FullNode, ShortNode, ValueNode
from mptproof.proof import Proof, ProofRecorder, Step, build_proof, compute_proof, recover_key, verify_proof

from conftest import build_trie, random_trie


TRIE_CASES = {
    "two levels": (["a", "B", "7", "ASDF", "    000    ", "fooBAR"], "fooBAR", 2),
    "short node": (["aaaaaaa1", "aaaa2", "aaaaaaaaaaaaab", "C"], "aaaaaaaaaaaaab", 5),
    # bytes 41, 42, 61, 62: full node embedding full nodes
    "embedded full node": (["a", "b", "A", "B"], "a", 1),
    # A ends up as a short node with key = [16] inside the second level
    "ends with value node": (
        ["a", "b", "A", "BBB", "CDUHIUHIUH", "DJOIOIHFW", "EHFKHEHOHWOHF", "BDED"],
        "A",
        2,
    ),
    "only short node": (["1"], "1", 1),
    "longer short node": (["fooled"], "fooled", 1),
    "longest short node": (["more than 16 bytes here..."], "more than 16 bytes here...", 1),
    "key ends on a branch": (["ab", "abc", "abd"], "ab", 2),
}


@pytest.mark.parametrize("name", list(TRIE_CASES))
def test_trie_proofs(name):
    items, query, num_steps = TRIE_CASES[name]
    tr, root = build_trie(items)

    proof = compute_proof(tr, query.encode())

    assert proof.value == query.encode()
    assert len(proof.steps) == num_steps
    assert proof.recover_key() == query.encode()
    verify_proof(proof, root)


def test_two_levels_shape(two_levels):
    tr, root = two_levels
    proof = compute_proof(tr, b"fooBAR")

    assert [s.index for s in proof.steps] == [6, 6]
    assert all(isinstance(s.node, FullNode) for s in proof.steps)
    # "ooBAR" + terminator, held by the embedded leaf
    assert proof.hex_remainder == bytes_to_nibbles(b"ooBAR")
    assert proof.steps[0].hash == root


def test_value_in_branch_slot():
    tr, root = build_trie(["ab", "abc", "abd"])
    proof = compute_proof(tr, b"ab")
    last = proof.steps[-1]
    assert isinstance(last.node, FullNode)
    assert last.index == 16
    assert proof.hex_remainder == ()
    verify_proof(proof, root)


def test_invalid_query():
    tr, _ = build_trie(["aaaaaaa1", "aaaa2", "aaaaaaaaaaaaab", "C"])
    with pytest.raises(KeyNotFound):
        compute_proof(tr, b"aaaaaaaaaa")


def test_absent_key_is_rejected_before_recording():
    class Spy:
        proved = False

        def get(self, key):
            return None

        def prove(self, key, sink):
            self.proved = True

    spy = Spy()
    with pytest.raises(KeyNotFound):
        compute_proof(spy, b"missing")
    assert not spy.proved


@pytest.mark.parametrize("seed", range(5))
def test_random_tries(seed):
    tr, kvs = random_trie(seed, 1000)
    root = tr.hash()
    for k, v in kvs[-3:] + kvs[:3] + kvs[100:103]:
        proof = compute_proof(tr, k)
        assert proof.value == v
        assert proof.recover_key() == k
        verify_proof(proof, root)


def test_flipped_hash_byte_breaks_chain():
    tr, kvs = random_trie(7, 500)
    root = tr.hash()
    proof = compute_proof(tr, kvs[-3][0])
    assert len(proof.steps) > 1

    for level, step in enumerate(proof.steps):
        for pos in (0, 17, 31):
            bad = bytearray(step.hash)
            bad[pos] ^= 0x01
            steps = list(proof.steps)
            steps[level] = replace(step, hash=bytes(bad))
            with pytest.raises(HashChainBroken):
                verify_proof(replace(proof, steps=tuple(steps)), root)


def test_wrong_root(two_levels):
    tr, root = two_levels
    proof = compute_proof(tr, b"fooBAR")
    with pytest.raises(HashChainBroken):
        verify_proof(proof, bytes(32))


def test_root_step_without_recorded_hash(two_levels):
    tr, root = two_levels
    proof = compute_proof(tr, b"fooBAR")
    steps = (replace(proof.steps[0], hash=b""),) + proof.steps[1:]
    unhashed = replace(proof, steps=steps)

    verify_proof(unhashed, root)
    with pytest.raises(HashChainBroken):
        verify_proof(unhashed, bytes(32))


def test_single_leaf_root_without_recorded_hash():
    tr, root = build_trie(["fooled"])
    proof = compute_proof(tr, b"fooled")
    assert len(proof.steps) == 1
    unhashed = replace(proof, steps=(replace(proof.steps[0], hash=b""),))

    verify_proof(unhashed, root)
    with pytest.raises(HashChainBroken):
        verify_proof(unhashed, bytes(32))


def test_lower_step_without_recorded_hash_is_rejected(two_levels):
    tr, root = two_levels
    proof = compute_proof(tr, b"fooBAR")
    steps = proof.steps[:1] + (replace(proof.steps[1], hash=b""),)
    with pytest.raises(HashChainBroken):
        verify_proof(replace(proof, steps=steps), root)


def test_wrong_value(two_levels):
    tr, root = two_levels
    proof = compute_proof(tr, b"fooBAR")
    with pytest.raises(HashChainBroken):
        verify_proof(replace(proof, value=b"fooBAZ"), root)


def test_key_mismatch(two_levels):
    tr, root = two_levels
    proof = compute_proof(tr, b"fooBAR")
    with pytest.raises(KeyMismatch):
        verify_proof(replace(proof, key=b"fooBAZ"), root)
    # remainder without terminator can't be turned back into a key
    with pytest.raises(KeyMismatch):
        verify_proof(replace(proof, hex_remainder=proof.hex_remainder[:-1]), root)


def test_tampered_remainder_is_caught(two_levels):
    tr, root = two_levels
    proof = compute_proof(tr, b"fooBAR")
    other = replace(proof, key=b"fooBAS", hex_remainder=bytes_to_nibbles(b"ooBAS"))
    assert other.recover_key() == b"fooBAS"
    with pytest.raises(HashChainBroken):
        verify_proof(other, root)


def test_recorder_decodes_in_order():
    leaf = ShortNode(bytes_to_nibbles(b"k"), ValueNode(b"v"))
    enc = encode_node(leaf)
    rec = ProofRecorder()
    rec.put(b"\x01" * 32, enc)
    rec.put(b"\x02" * 32, enc)
    assert len(rec) == 2
    assert [s.hash for s in rec.path()] == [b"\x01" * 32, b"\x02" * 32]
    assert rec.path()[0].node == leaf


def test_recorder_rejects_garbage():
    with pytest.raises(MalformedNode):
        ProofRecorder().put(b"\x01" * 32, b"\xc3\x01\x02\x03")


def test_build_proof_prefix_mismatch():
    leaf = ShortNode(bytes_to_nibbles(b"other"), ValueNode(b"v"))
    with pytest.raises(PrefixMismatch):
        build_proof(b"key", b"v", [Step(node=leaf)])


def test_build_proof_empty_path():
    leaf = ShortNode(bytes_to_nibbles(b"k"), ValueNode(b"v"))
    with pytest.raises(EmptyPath):
        build_proof(b"k", b"v", [Step(node=leaf), Step(node=FullNode())])


def test_build_proof_unexpected_kind():
    with pytest.raises(UnexpectedNodeKind):
        build_proof(b"k", b"v", [Step(node=ValueNode(b"v"))])


def test_recover_key_from_steps():
    proof = Proof(
        steps=(
            Step(node=FullNode(), index=6),
            Step(node=ShortNode((6,), ValueNode(b"")), index=None),
        ),
        key=b"f",
        value=b"",
        hex_remainder=(16,),
    )
    assert recover_key(proof) == b"f"


def test_trace_logging(two_levels, caplog):
    tr, _ = two_levels
    recorder = ProofRecorder()
    tr.prove(b"fooBAR", recorder)
    with caplog.at_level("DEBUG", logger="mptproof"):
        build_proof(b"fooBAR", b"fooBAR", recorder.path(), trace=True)
    assert "hexkey: 0606060f060f040204010502" in caplog.text
    assert "next: 6" in caplog.text


def test_proof_to_dict(two_levels):
    tr, root = two_levels
    d = compute_proof(tr, b"fooBAR").to_dict()
    assert d["key"] == b"fooBAR".hex()
    assert [s["kind"] for s in d["steps"]] == ["FULL", "FULL"]
    assert d["steps"][0]["hash"] == root.hex()
