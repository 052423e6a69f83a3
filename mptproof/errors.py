"""
mptproof.errors
---------------

One root `ProofError` with a machine-stable `code` and optional `data`,
plus a concrete subclass per failure condition.

None of these are retryable: every input is already materialized in memory,
so running the same operation again yields the same outcome.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ProofError(Exception):
    """Root error for proof construction, verification and conversion."""

    code = "MPT/ERROR"
    # fatal errors mean a broken in-memory structure, not bad input
    fatal = False

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"{self.code}: {message}")
        self.message = message
        self.data = dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "data": {k: _coerce(v) for k, v in self.data.items()},
            "fatal": self.fatal,
        }


def _coerce(v: Any) -> Any:
    if isinstance(v, (bytes, bytearray)):
        return bytes(v).hex()
    if isinstance(v, tuple):
        return list(v)
    return v


class KeyNotFound(ProofError):
    code = "MPT/KEY_NOT_FOUND"


class MalformedKey(ProofError):
    code = "MPT/MALFORMED_KEY"


class MalformedNode(ProofError):
    code = "MPT/MALFORMED_NODE"


class MissingNode(ProofError):
    """A hash reference could not be resolved from the node database."""

    code = "MPT/MISSING_NODE"


class PrefixMismatch(ProofError):
    code = "MPT/PREFIX_MISMATCH"


class EmptyPath(ProofError):
    code = "MPT/EMPTY_PATH"


class UnexpectedNodeKind(ProofError):
    code = "MPT/UNEXPECTED_NODE_KIND"


class KeyMismatch(ProofError):
    code = "MPT/KEY_MISMATCH"


class HashChainBroken(ProofError):
    code = "MPT/HASH_CHAIN_BROKEN"


class UnsupportedProofShape(ProofError, NotImplementedError):
    code = "MPT/UNSUPPORTED_PROOF_SHAPE"


class EncodingFailure(ProofError):
    """Encoding an in-memory node failed; the node structure is corrupt."""

    code = "MPT/ENCODING_FAILURE"
    fatal = True


__all__ = [
    "ProofError",
    "KeyNotFound",
    "MalformedKey",
    "MalformedNode",
    "MissingNode",
    "PrefixMismatch",
    "EmptyPath",
    "UnexpectedNodeKind",
    "KeyMismatch",
    "HashChainBroken",
    "UnsupportedProofShape",
    "EncodingFailure",
]
