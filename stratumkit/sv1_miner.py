"""A mock mining device that hashes candidate headers for a V1 client."""

from __future__ import annotations

import logging
import time as _time
from dataclasses import dataclass

from stratumkit.header import BlockHeader
from stratumkit.sv1_job import Job

log = logging.getLogger(__name__)

_U256_MAX = (1 << 256) - 1
_U32_MAX = 0xFFFFFFFF
_TIME_OFFSET_SECS = 60


@dataclass
class Miner:
    """Holds the current candidate header and target."""

    header: BlockHeader | None = None
    target: int | None = None
    job_id: int | None = None
    version: int | None = None
    handicap: int = 0

    def new_target(self, target: int) -> None:
        """Replace the current mining target."""
        if not 0 <= target <= _U256_MAX:
            raise ValueError("target must fit in 256 unsigned bits")
        self.target = target

    def new_header(self, job: Job) -> None:
        """Start mining on a new job with nonce 0."""
        self.job_id = job.job_id
        self.version = job.version
        version = job.version - (1 << 32) if job.version > 0x7FFFFFFF else job.version
        self.header = BlockHeader(
            version=version,
            prev_blockhash=job.prev_hash,
            merkle_root=job.merkle_root,
            time=(int(_time.time()) + _TIME_OFFSET_SECS) & _U32_MAX,
            bits=job.nbits,
            nonce=0,
        )

    def next_share(self) -> bool:
        """Return True when the current header hashes below the target."""
        if self.header is None or self.target is None:
            return False
        hash_value = self.header.hash_as_int()
        if hash_value < self.target:
            log.info(
                "Found share with nonce: %d, for target: %#x, hash: %#x",
                self.header.nonce,
                self.target,
                hash_value,
            )
            return True
        return False