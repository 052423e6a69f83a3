"""Inclusion proofs for hexary Merkle-Patricia tries."""

from .convert import ExistenceProof, HashOp, InnerOp, LeafOp, LengthOp, convert_proof
from .errors import (
    EmptyPath,
    EncodingFailure,
    HashChainBroken,
    KeyMismatch,
    KeyNotFound,
    MalformedKey,
    MalformedNode,
    MissingNode,
    PrefixMismatch,
    ProofError,
    UnexpectedNodeKind,
    UnsupportedProofShape,
)
from .hasher import EMPTY_ROOT, collapse, encode_node, hash_node
from .nibbles import bytes_to_nibbles, compact_decode, compact_encode, nibbles_to_bytes
from .node import FullNode, HashNode, Node, PathStep, ShortNode, ValueNode, decode_node
from .proof import Proof, ProofRecorder, Step, build_proof, compute_proof, recover_key, verify_proof
from .trie import Trie

__version__ = "0.1.0"
