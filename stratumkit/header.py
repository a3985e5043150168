"""Bitcoin block header hashing and merkle root helpers."""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Iterable
from dataclasses import dataclass

HASH_SIZE = 32
HEADER_SIZE = 80

_HEADER_FORMAT = struct.Struct("<I32s32sIII")
_U32_MAX = 0xFFFFFFFF


def double_sha256(data: bytes) -> bytes:
    """Return SHA-256 applied twice to ``data``."""
    return hashlib.sha256(hashlib.sha256(bytes(data)).digest()).digest()


def merkle_root_from_path(
    coinbase_prefix: bytes,
    coinbase_suffix: bytes,
    extranonce: bytes,
    path: Iterable[bytes],
) -> bytes:
    """Build the coinbase, hash it and fold the merkle branch into a root.

    The coinbase is ``prefix + extranonce + suffix``; each branch node is
    appended to the running hash and the pair is hashed again.
    """
    coinbase = bytes(coinbase_prefix) + bytes(extranonce) + bytes(coinbase_suffix)
    root = double_sha256(coinbase)
    for node in path:
        node = bytes(node)
        if len(node) != HASH_SIZE:
            raise ValueError(
                f"merkle branch node must be {HASH_SIZE} bytes, got {len(node)}"
            )
        root = double_sha256(root + node)
    return root


def _check_u32(name: str, value: int) -> None:
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"{name} must fit in 32 unsigned bits, got {value}")


@dataclass
class BlockHeader:
    """An 80-byte block header with hashes kept in their raw byte order."""

    version: int
    prev_blockhash: bytes
    merkle_root: bytes
    time: int
    bits: int
    nonce: int = 0

    def __post_init__(self) -> None:
        self.prev_blockhash = bytes(self.prev_blockhash)
        self.merkle_root = bytes(self.merkle_root)
        for name in ("prev_blockhash", "merkle_root"):
            if len(getattr(self, name)) != HASH_SIZE:
                raise ValueError(f"{name} must be {HASH_SIZE} bytes")
        self._validate_numbers()

    def _validate_numbers(self) -> None:
        if not -(1 << 31) <= self.version <= _U32_MAX:
            raise ValueError(f"version out of range: {self.version}")
        _check_u32("time", self.time)
        _check_u32("bits", self.bits)
        _check_u32("nonce", self.nonce)

    def serialize(self) -> bytes:
        """Return the consensus encoding of the header."""
        self._validate_numbers()
        return _HEADER_FORMAT.pack(
            self.version & _U32_MAX,
            self.prev_blockhash,
            self.merkle_root,
            self.time,
            self.bits,
            self.nonce,
        )

    def block_hash(self) -> bytes:
        """Return the raw (internal byte order) double SHA-256 of the header."""
        return double_sha256(self.serialize())

    def hash_as_int(self) -> int:
        """Return the block hash read as a little-endian 256-bit number."""
        return int.from_bytes(self.block_hash(), "little")