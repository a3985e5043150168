import pytest

from stratumkit.header import (
    HEADER_SIZE,
    BlockHeader,
    double_sha256,
    merkle_root_from_path,
)

GENESIS_MERKLE_DISPLAY = (
    "4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b"
)
GENESIS_HASH_DISPLAY = (
    "000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f"
)


def genesis_header():
    return BlockHeader(
        version=1,
        prev_blockhash=bytes(32),
        merkle_root=bytes.fromhex(GENESIS_MERKLE_DISPLAY)[::-1],
        time=1231006505,
        bits=0x1D00FFFF,
        nonce=2083236893,
    )


def test_double_sha256_is_32_bytes_and_deterministic():
    first = double_sha256(b"stratum")
    assert len(first) == 32
    assert double_sha256(b"stratum") == first
    assert double_sha256(b"stratum!") != first


def test_genesis_serialization_length():
    assert len(genesis_header().serialize()) == HEADER_SIZE


def test_genesis_block_hash():
    assert genesis_header().block_hash()[::-1].hex() == GENESIS_HASH_DISPLAY


def test_hash_as_int_matches_display_hash():
    assert genesis_header().hash_as_int() == int(GENESIS_HASH_DISPLAY, 16)


def test_nonce_changes_hash():
    header = genesis_header()
    before = header.block_hash()
    header.nonce += 1
    assert header.block_hash() != before
    assert len(header.block_hash()) == 32


def test_negative_version_serializes_as_unsigned():
    header = genesis_header()
    header.version = -1
    assert header.serialize()[:4] == b"\xff\xff\xff\xff"


def test_wrong_hash_length_rejected():
    with pytest.raises(ValueError):
        BlockHeader(1, bytes(31), bytes(32), 0, 0)


def test_nonce_overflow_rejected_on_serialize():
    header = genesis_header()
    header.nonce = 1 << 32
    with pytest.raises(ValueError):
        header.serialize()


def test_merkle_root_without_path_is_coinbase_hash():
    root = merkle_root_from_path(b"\x01\x02", b"\x05", b"\x03\x04", [])
    assert root == double_sha256(b"\x01\x02\x03\x04\x05")


def test_merkle_root_folds_branch():
    node = b"\x11" * 32
    coinbase_hash = double_sha256(b"ab")
    root = merkle_root_from_path(b"a", b"b", b"", [node])
    assert root == double_sha256(coinbase_hash + node)


def test_merkle_root_rejects_short_node():
    with pytest.raises(ValueError):
        merkle_root_from_path(b"a", b"b", b"", [b"\x00" * 31])