"""Jobs built from Stratum V1 ``mining.notify`` messages."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from stratumkit.header import HASH_SIZE, merkle_root_from_path

_U32_MAX = 0xFFFFFFFF


def _hex_bytes(name: str, value: object) -> bytes:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a hex string")
    return bytes.fromhex(value)


def _hex_u32(name: str, value: object) -> int:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{name} must be a hex string")
    number = int(value, 16)
    if not 0 <= number <= _U32_MAX:
        raise ValueError(f"{name} does not fit in 32 bits")
    return number


@dataclass
class Notify:
    """Parameters of a ``mining.notify`` message."""

    job_id: str
    prev_hash: bytes
    coin_base1: bytes
    coin_base2: bytes
    merkle_branch: list[bytes] = field(default_factory=list)
    version: int = 0
    bits: int = 0
    time: int = 0
    clean_jobs: bool = False

    @classmethod
    def from_params(cls, params: Sequence[object]) -> "Notify":
        """Parse the JSON-RPC ``params`` array of ``mining.notify``."""
        if len(params) != 9:
            raise ValueError(f"mining.notify takes 9 params, got {len(params)}")
        (job_id, prev_hash, coinb1, coinb2, branch, version, bits, ntime, clean) = params
        if not isinstance(job_id, str):
            raise ValueError("job_id must be a string")
        if not isinstance(branch, (list, tuple)):
            raise ValueError("merkle_branch must be a list")
        if not isinstance(clean, bool):
            raise ValueError("clean_jobs must be a boolean")
        return cls(
            job_id=job_id,
            prev_hash=_hex_bytes("prev_hash", prev_hash),
            coin_base1=_hex_bytes("coin_base1", coinb1),
            coin_base2=_hex_bytes("coin_base2", coinb2),
            merkle_branch=[_hex_bytes("merkle_branch", node) for node in branch],
            version=_hex_u32("version", version),
            bits=_hex_u32("bits", bits),
            time=_hex_u32("time", ntime),
            clean_jobs=clean,
        )


@dataclass(frozen=True)
class Job:
    """A mining job: what the miner needs to build candidate headers."""

    job_id: int
    prev_hash: bytes
    merkle_root: bytes
    version: int
    nbits: int

    @classmethod
    def from_notify(cls, notify: Notify, extranonce: bytes) -> "Job":
        """Build a job from a notify message and the full extranonce."""
        if not notify.job_id.isdigit():
            raise ValueError(f"job_id is not a valid u32: {notify.job_id!r}")
        job_id = int(notify.job_id)
        if job_id > _U32_MAX:
            raise ValueError(f"job_id is not a valid u32: {notify.job_id!r}")
        prev_hash = bytes(notify.prev_hash)
        if len(prev_hash) != HASH_SIZE:
            raise ValueError(f"prev_hash must be {HASH_SIZE} bytes")
        merkle_root = merkle_root_from_path(
            notify.coin_base1, notify.coin_base2, extranonce, notify.merkle_branch
        )
        return cls(
            job_id=job_id,
            prev_hash=prev_hash,
            merkle_root=merkle_root,
            version=notify.version,
            nbits=notify.bits,
        )