"""Protocol state of the Stratum V2 mock mining device (standard channels)."""

from __future__ import annotations

import ipaddress
import itertools
import logging
from dataclasses import dataclass

from stratumkit.header import HASH_SIZE
from stratumkit.sv1_protocol import ProtocolError
from stratumkit.sv2_miner import Miner, measure_hashrate

log = logging.getLogger(__name__)

MINING_PROTOCOL = 0
PROTOCOL_VERSION = 2
# Bit 0 of the mining protocol flags: the device requires standard jobs.
REQUIRES_STANDARD_JOBS = 0b1
OPEN_CHANNEL_REQUEST_ID = 10
HASHRATE_MEASURE_SECS = 5
_STR0255_MAX = 255


def _str0255(name: str, value: str) -> str:
    if len(value.encode()) > _STR0255_MAX:
        raise ValueError(f"{name} is longer than {_STR0255_MAX} bytes")
    return value


def _split_address(address: str | tuple[str, int]) -> tuple[str, int]:
    if isinstance(address, tuple):
        host, port = address
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep or not port_text.isdigit():
            raise ValueError(f"Invalid socket address: {address!r}")
        host, port = host.strip("[]"), int(port_text)
    port = int(port)
    if not 0 <= port <= 0xFFFF:
        raise ValueError(f"port out of range: {port}")
    return str(ipaddress.ip_address(host)), port


@dataclass(frozen=True)
class SetupConnection:
    """A ``SetupConnection`` request sent when the connection is opened."""

    protocol: int
    min_version: int
    max_version: int
    flags: int
    endpoint_host: str
    endpoint_port: int
    vendor: str
    hardware_version: str
    firmware: str
    device_id: str


@dataclass(frozen=True)
class OpenStandardMiningChannel:
    """Request to open a standard mining channel."""

    request_id: int
    user_identity: str
    nominal_hash_rate: float
    max_target: bytes


@dataclass(frozen=True)
class NewMiningJob:
    """A job for a standard channel; it is a future job when it has no ``min_ntime``."""

    channel_id: int
    job_id: int
    min_ntime: int | None
    version: int
    merkle_root: bytes

    def is_future(self) -> bool:
        return self.min_ntime is None


@dataclass(frozen=True)
class SetNewPrevHash:
    """New chain tip for a channel, activating the job with ``job_id``."""

    channel_id: int
    job_id: int
    prev_hash: bytes
    min_ntime: int
    nbits: int


@dataclass(frozen=True)
class SubmitSharesStandard:
    """A share found on a standard channel."""

    channel_id: int
    sequence_number: int
    job_id: int
    nonce: int
    ntime: int
    version: int


def setup_connection_message(
    address: str | tuple[str, int], device_id: str | None
) -> SetupConnection:
    """Build the mining-protocol ``SetupConnection`` for a peer address."""
    host, port = _split_address(address)
    device_id = device_id or ""
    log.info("Creating SetupConnection message with device id: %r", device_id)
    return SetupConnection(
        protocol=MINING_PROTOCOL,
        min_version=PROTOCOL_VERSION,
        max_version=PROTOCOL_VERSION,
        flags=REQUIRES_STANDARD_JOBS,
        endpoint_host=host,
        endpoint_port=port,
        vendor="",
        hardware_version="",
        firmware="",
        device_id=_str0255("device_id", device_id),
    )


def open_channel(
    device_id: str | None, nominal_hashrate_multiplier: float | None, handicap: int
) -> OpenStandardMiningChannel:
    """Measure the local hashrate and build the channel-open request."""
    user_identity = _str0255("user_identity", device_id or "")
    log.info("Measuring CPU hashrate")
    measured = measure_hashrate(HASHRATE_MEASURE_SECS, handicap)
    log.info("Measured CPU hashrate is %s", measured)
    nominal = measured if nominal_hashrate_multiplier is None else (
        measured * nominal_hashrate_multiplier
    )
    log.info("MINING DEVICE: send open channel with request id %d", OPEN_CHANNEL_REQUEST_ID)
    return OpenStandardMiningChannel(
        request_id=OPEN_CHANNEL_REQUEST_ID,
        user_identity=user_identity,
        nominal_hash_rate=nominal,
        max_target=b"\xff" * HASH_SIZE,
    )


class Device:
    """Tracks channel, jobs and chain tip, and keeps the miner's work current."""

    def __init__(self, handicap: int = 0, miner: Miner | None = None) -> None:
        self.miner = miner if miner is not None else Miner(handicap=handicap)
        self.channel_opened = False
        self.channel_id: int | None = None
        self.jobs: list[NewMiningJob] = []
        self.prev_hash: SetNewPrevHash | None = None
        self._sequence_numbers = itertools.count(1)
        self._work_changed = True

    def _start_job(self, prev_hash: SetNewPrevHash, job: NewMiningJob) -> None:
        self.miner.new_header(
            prev_hash.prev_hash, prev_hash.nbits, job.job_id, job.version, job.merkle_root
        )
        self.jobs = [job]
        self._work_changed = True

    def handle_open_standard_mining_channel_success(
        self, channel_id: int, group_channel_id: int, request_id: int, target: bytes
    ) -> None:
        """Record the opened channel and its little-endian target."""
        self.channel_opened = True
        self.channel_id = channel_id
        log.info(
            "MINING DEVICE: channel opened with: group id %d, channel id %d, request id %d",
            group_channel_id,
            channel_id,
            request_id,
        )
        self.miner.new_target(target)
        self._work_changed = True

    def handle_new_mining_job(self, job: NewMiningJob) -> None:
        """Mine an active job at once; keep a future job for a later prev hash."""
        log.info(
            "Received new mining job for channel id: %d with job id: %d is future: %s",
            job.channel_id,
            job.job_id,
            job.is_future(),
        )
        if job.is_future():
            self.jobs.append(job)
        elif self.prev_hash is not None:
            self._start_job(self.prev_hash, job)
        else:
            raise ProtocolError("active mining job received before any prev hash")

    def handle_set_new_prev_hash(self, prev_hash: SetNewPrevHash) -> None:
        """Store the new tip and start the future job it activates, if known."""
        log.info(
            "Received SetNewPrevHash channel id: %d, job id: %d",
            prev_hash.channel_id,
            prev_hash.job_id,
        )
        matching = [
            job for job in self.jobs if job.job_id == prev_hash.job_id and job.is_future()
        ]
        if len(matching) > 1:
            raise ProtocolError(f"several future jobs with id {prev_hash.job_id}")
        if matching:
            self._start_job(prev_hash, matching[0])
        self.prev_hash = prev_hash

    def handle_set_target(self, channel_id: int, maximum_target: bytes) -> None:
        """Replace the miner's target."""
        log.info("Received SetTarget for channel id: %d", channel_id)
        self.miner.new_target(maximum_target)
        self._work_changed = True

    def handle_submit_shares_success(self, message: object) -> None:
        log.info("Received SubmitSharesSuccess")
        log.debug("SubmitSharesSuccess: %s", message)

    def handle_submit_shares_error(self, error_code: bytes) -> str:
        """Log a rejected share and return its decoded error code."""
        try:
            text = bytes(error_code).decode()
        except UnicodeDecodeError:
            text = "unknown error code"
        log.error("Received SubmitSharesError with error code %s", text)
        return text

    def take_work_notification(self) -> bool:
        """Return whether the mining threads must restart, clearing the flag."""
        changed, self._work_changed = self._work_changed, False
        return changed

    def build_share(
        self, nonce: int, job_id: int, version: int, ntime: int
    ) -> SubmitSharesStandard:
        """Build a share submission with the next sequence number."""
        if self.channel_id is None:
            raise ProtocolError("cannot submit a share before the channel is open")
        return SubmitSharesStandard(
            channel_id=self.channel_id,
            sequence_number=next(self._sequence_numbers),
            job_id=job_id,
            nonce=nonce,
            ntime=ntime,
            version=version,
        )