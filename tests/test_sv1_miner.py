import time

import pytest

from stratumkit.header import BlockHeader
from stratumkit.sv1_job import Job
from stratumkit.sv1_miner import Miner


def sample_job(version=0x20000000):
    return Job(
        job_id=7,
        prev_hash=b"\x01" * 32,
        merkle_root=b"\x02" * 32,
        version=version,
        nbits=0x1D00FFFF,
    )


def test_new_target_sets_value():
    miner = Miner()
    miner.new_target(1 << 200)
    assert miner.target == 1 << 200


def test_new_target_out_of_range():
    with pytest.raises(ValueError):
        Miner().new_target(1 << 256)


def test_new_header_copies_job():
    miner = Miner()
    job = sample_job()
    before = int(time.time())
    miner.new_header(job)
    after = int(time.time())
    assert miner.job_id == 7
    assert miner.version == job.version
    assert miner.header.prev_blockhash == job.prev_hash
    assert miner.header.merkle_root == job.merkle_root
    assert miner.header.bits == job.nbits
    assert miner.header.nonce == 0
    assert before + 60 <= miner.header.time <= after + 60


def test_new_header_high_version_serializes_unsigned():
    miner = Miner()
    miner.new_header(sample_job(version=0xFFFFFFFF))
    assert miner.header.serialize()[:4] == b"\xff\xff\xff\xff"
    assert miner.version == 0xFFFFFFFF


def test_next_share_without_header_or_target():
    miner = Miner()
    assert miner.next_share() is False
    miner.new_target((1 << 256) - 1)
    assert miner.next_share() is False


def test_next_share_compares_strictly_against_target():
    miner = Miner()
    miner.header = BlockHeader(1, bytes(32), bytes(32), 0, 0x1D00FFFF, 5)
    hash_value = miner.header.hash_as_int()
    miner.new_target(hash_value)
    assert miner.next_share() is False
    miner.new_target(hash_value + 1)
    assert miner.next_share() is True


def test_zero_target_never_yields_share():
    miner = Miner()
    miner.new_header(sample_job())
    miner.new_target(0)
    assert miner.next_share() is False