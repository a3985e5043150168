"""CPU miner used by the Stratum V2 mock mining device."""

from __future__ import annotations

import enum
import logging
import os
import queue
import secrets
import threading
import time as _time
from dataclasses import dataclass

from stratumkit.header import HASH_SIZE, BlockHeader

log = logging.getLogger(__name__)

_U32_MAX = 0xFFFFFFFF
_TIME_OFFSET_SECS = 60

Share = tuple[int, int, int, int]


class NextShareOutcome(enum.Enum):
    """Result of hashing the current candidate header once."""

    VALID_SHARE = "valid_share"
    INVALID_SHARE = "invalid_share"
    NO_TARGET = "no_target"
    NO_HEADER = "no_header"

    def is_valid(self) -> bool:
        """Return True only for a share that meets the target."""
        return self is NextShareOutcome.VALID_SHARE


def _now_plus_offset() -> int:
    return (int(_time.time()) + _TIME_OFFSET_SECS) & _U32_MAX


def _available_parallelism() -> int:
    try:
        return max(1, len(os.sched_getaffinity(0)))
    except (AttributeError, OSError):
        return os.cpu_count() or 1


@dataclass
class Miner:
    """Candidate header, target and job details for one mining thread."""

    header: BlockHeader | None = None
    target: int | None = None
    job_id: int | None = None
    version: int | None = None
    handicap: int = 0

    def new_target(self, target: bytes) -> None:
        """Set the target from its 32-byte little-endian encoding."""
        target = bytes(target)
        if len(target) != HASH_SIZE:
            raise ValueError(f"target must be {HASH_SIZE} bytes, got {len(target)}")
        log.info("Set target to %s", target.hex())
        self.target = int.from_bytes(target, "little")

    def new_header(
        self,
        prev_hash: bytes,
        nbits: int,
        job_id: int,
        version: int,
        merkle_root: bytes,
    ) -> None:
        """Start mining a new job from nonce 0."""
        header = BlockHeader(
            version=version,
            prev_blockhash=prev_hash,
            merkle_root=merkle_root,
            time=_now_plus_offset(),
            bits=nbits,
            nonce=0,
        )
        self.job_id = job_id
        self.version = version
        self.header = header

    def next_share(self) -> NextShareOutcome:
        """Hash the current header and compare it with the target."""
        if self.header is None:
            return NextShareOutcome.NO_HEADER
        if self.target is None:
            return NextShareOutcome.NO_TARGET
        hash_value = self.header.hash_as_int()
        if hash_value <= self.target:
            log.info(
                "Found share with nonce: %d, for target: %#x, with hash: %s",
                self.header.nonce,
                self.target,
                self.header.block_hash().hex(),
            )
            return NextShareOutcome.VALID_SHARE
        return NextShareOutcome.INVALID_SHARE


def measure_hashrate(duration_secs: float, handicap: int) -> float:
    """Estimate the hashes per second of this machine over ``duration_secs``."""
    header = BlockHeader(
        version=secrets.randbits(32) - (1 << 31),
        prev_blockhash=secrets.token_bytes(HASH_SIZE),
        merkle_root=secrets.token_bytes(HASH_SIZE),
        time=_now_plus_offset(),
        bits=secrets.randbits(32),
        nonce=0,
    )
    miner = Miner(handicap=handicap)
    # A zero target keeps the measurement from reporting found shares.
    miner.new_target(bytes(HASH_SIZE))
    miner.header = header

    start = _time.perf_counter()
    hashes = 0
    while _time.perf_counter() - start < duration_secs:
        miner.next_share()
        hashes += 1
    elapsed = _time.perf_counter() - start
    if hashes == 0 or elapsed <= 0:
        return 0.0
    return hashes / elapsed * _available_parallelism()


def _advance_nonce(miner: Miner) -> None:
    if miner.header is not None:
        miner.header.nonce = (miner.header.nonce + 1) & _U32_MAX


def _share_of(miner: Miner) -> Share:
    header = miner.header
    if header is None or miner.job_id is None or miner.version is None:
        raise ValueError("miner has no job to submit a share for")
    return (header.nonce, miner.job_id, miner.version, header.time)


def mine(miner: Miner, share_queue: queue.Queue[Share], kill: threading.Event) -> None:
    """Hash nonces in a loop, queueing each valid share, until ``kill`` is set."""
    while not kill.is_set():
        if miner.handicap:
            _time.sleep(miner.handicap / 1_000_000)
        if miner.next_share().is_valid():
            if kill.is_set():
                break
            share_queue.put_nowait(_share_of(miner))
        _advance_nonce(miner)