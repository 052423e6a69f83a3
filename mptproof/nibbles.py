"""
Key codec: byte keys <-> nibble paths <-> compact (hex-prefix) encoding.

A nibble path is a tuple of ints. Full keys end with TERMINATOR (16), which
marks "this is a whole key, not a prefix". Both byte layouts here are part of
the node hash; changing either changes every hash in the trie.
"""

from __future__ import annotations

from typing import Sequence, Tuple

from .errors import MalformedKey

Nibbles = Tuple[int, ...]

TERMINATOR = 16


def bytes_to_nibbles(b: bytes) -> Nibbles:
    nibbles = []
    for byte in b:
        nibbles.append(byte >> 4)      # high nibble
        nibbles.append(byte & 0x0F)    # low nibble
    nibbles.append(TERMINATOR)
    return tuple(nibbles)


def nibbles_to_bytes(nibbles: Sequence[int]) -> bytes:
    if not has_terminator(nibbles):
        raise MalformedKey("nibble path has no terminator", {"nibbles": tuple(nibbles)})
    body = nibbles[:-1]
    if len(body) % 2:
        raise MalformedKey("odd nibble count", {"nibbles": tuple(nibbles)})
    b = bytearray()
    for i in range(0, len(body), 2):
        hi, lo = body[i], body[i + 1]
        if not (0 <= hi < 16 and 0 <= lo < 16):
            raise MalformedKey("nibble out of range", {"nibbles": tuple(nibbles)})
        b.append((hi << 4) | lo)
    return bytes(b)


def has_terminator(nibbles: Sequence[int]) -> bool:
    return len(nibbles) > 0 and nibbles[-1] == TERMINATOR


def prefix_len(a: Sequence[int], b: Sequence[int]) -> int:
    """Length of the common prefix of two nibble paths."""
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    return i


def compact_encode(nibbles: Sequence[int]) -> bytes:
    """
    Pack a nibble path into its hex-prefix form.

    The first nibble is a flag: bit 1 set for a terminated (leaf) path, bit 0
    set for an odd number of nibbles. Odd paths put their first nibble next
    to the flag, even paths pad it with a zero nibble.
    """
    path = tuple(nibbles)
    flag = 0
    if has_terminator(path):
        flag = 2
        path = path[:-1]
    if len(path) % 2:
        prefixed = (flag | 1,) + path
    else:
        prefixed = (flag, 0) + path
    out = bytearray()
    for i in range(0, len(prefixed), 2):
        out.append((prefixed[i] << 4) | prefixed[i + 1])
    return bytes(out)


def compact_decode(data: bytes) -> Nibbles:
    if not data:
        return ()
    flag = data[0] >> 4
    if flag > 3:
        raise MalformedKey("invalid compact flag", {"compact": data})
    raw = []
    for byte in data:
        raw.append(byte >> 4)
        raw.append(byte & 0x0F)
    path = tuple(raw[2 - (flag & 1):])
    if flag & 2:
        path += (TERMINATOR,)
    return path
