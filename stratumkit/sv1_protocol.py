"""Client side of the Stratum V1 JSON-RPC protocol for a mock mining device."""

from __future__ import annotations

import enum
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any

from stratumkit.sv1_job import Job, Notify
from stratumkit.sv1_miner import Miner

log = logging.getLogger(__name__)

# Difficulty-1 target as a float, the value the pool difficulty is divided into.
_PDIFF = 26959946667150639794667015087019630673637144422540572481103610249215.0
_U32_MAX = 0xFFFFFFFF

Message = dict[str, Any]


class ClientStatus(enum.Enum):
    """Where the client is in the connection handshake."""

    INIT = "init"
    CONFIGURED = "configured"
    SUBSCRIBED = "subscribed"


class ProtocolError(Exception):
    """Raised when a message is malformed or arrives in the wrong state."""


def _biguint_from_float(value: float) -> int | None:
    if not math.isfinite(value):
        return None
    number = math.trunc(value)
    if number < 0:
        return None
    return number


def target_from_difficulty(diff: float) -> int | None:
    """Convert a pool difficulty into a 256-bit target, or None if it cannot fit."""
    if diff == 0.0:
        return 0
    quotient = _PDIFF / diff
    if quotient > 0.0:
        target = _biguint_from_float(quotient)
    else:
        try:
            target = _biguint_from_float(1.0 / quotient)
        except ZeroDivisionError:
            target = None
    if target is None or target.bit_length() > 256:
        return None
    return target


def _hex_u32(value: int) -> str:
    if not 0 <= value <= _U32_MAX:
        raise ProtocolError(f"value does not fit in 32 bits: {value}")
    return f"{value:08x}"


def _parse_hex_u32(name: str, value: Any) -> int:
    if not isinstance(value, str):
        raise ProtocolError(f"{name} must be a hex string")
    try:
        number = int(value, 16)
    except ValueError as exc:
        raise ProtocolError(f"{name} is not valid hex: {value!r}") from exc
    if not 0 <= number <= _U32_MAX:
        raise ProtocolError(f"{name} does not fit in 32 bits")
    return number


@dataclass
class Session:
    """Protocol state of one V1 client connection, driving a miner."""

    client_id: int
    miner: Miner = field(default_factory=Miner)
    status: ClientStatus = ClientStatus.INIT
    extranonce1: bytes | None = None
    extranonce2_size: int | None = None
    version_rolling_mask: int | None = None
    version_rolling_min_bit: int | None = None
    authorize_requests: list[tuple[int, str]] = field(default_factory=list)
    authorized: list[str] = field(default_factory=list)
    _pending: dict[int, str] = field(default_factory=dict, repr=False)

    @property
    def signature(self) -> str:
        return str(self.client_id)

    def configure(self, request_id: int) -> Message:
        """Build a ``mining.configure`` request."""
        extensions: list[str] = []
        options: dict[str, str] = {}
        if self.version_rolling_mask is not None or self.version_rolling_min_bit is not None:
            extensions.append("version-rolling")
            if self.version_rolling_mask is not None:
                options["version-rolling.mask"] = _hex_u32(self.version_rolling_mask)
            if self.version_rolling_min_bit is not None:
                options["version-rolling.min-bit-count"] = _hex_u32(
                    self.version_rolling_min_bit
                )
        self._pending[request_id] = "mining.configure"
        return {"id": request_id, "method": "mining.configure", "params": [extensions, options]}

    def subscribe(self, request_id: int) -> Message:
        """Build a ``mining.subscribe`` request."""
        self._pending[request_id] = "mining.subscribe"
        return {"id": request_id, "method": "mining.subscribe", "params": []}

    def authorize(self, request_id: int, name: str, password: str) -> Message:
        """Build a ``mining.authorize`` request; not allowed before configuring."""
        if self.status is ClientStatus.INIT:
            raise ProtocolError("incorrect client status for mining.authorize")
        self.authorize_requests.append((request_id, name))
        return {"id": request_id, "method": "mining.authorize", "params": [name, password]}

    def submit(self, nonce: int, job_id: int, ntime: int) -> Message:
        """Build a ``mining.submit`` request for a found share."""
        if self.status is not ClientStatus.SUBSCRIBED or self.extranonce2_size is None:
            raise ProtocolError("cannot submit before the client is subscribed")
        return {
            "id": 0,
            "method": "mining.submit",
            "params": [
                "user",
                str(job_id),
                bytes(self.extranonce2_size).hex(),
                _hex_u32(ntime),
                _hex_u32(nonce),
            ],
        }

    def id_is_authorize(self, request_id: int) -> str | None:
        """Return the user name of the authorize request with this id, if any."""
        return next(
            (name for rid, name in self.authorize_requests if rid == request_id), None
        )

    def is_authorized(self, name: str) -> bool:
        return name in self.authorized

    def parse_line(self, line: str) -> Message | None:
        """Decode one JSON line from the server and handle it."""
        log.info("CLIENT %s - Received: %s", self.client_id, line)
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"invalid JSON message: {exc}") from exc
        return self.handle_message(message)

    def handle_message(self, message: Message) -> Message | None:
        """Handle a decoded server message; return a reply to send, if any."""
        if not isinstance(message, dict):
            raise ProtocolError("message must be a JSON object")
        if "method" in message:
            self._handle_notification(message["method"], message.get("params", []))
            return None
        if "id" in message and ("result" in message or "error" in message):
            return self._handle_response(message)
        raise ProtocolError(f"unrecognised message: {message!r}")

    def _handle_response(self, message: Message) -> Message | None:
        request_id = message["id"]
        error = message.get("error")
        method = self._pending.pop(request_id, None)
        if error is not None:
            log.warning("Server returned an error for request %s: %s", request_id, error)
            return None
        result = message.get("result")
        if method == "mining.configure":
            return self._on_configure(request_id, result)
        if method == "mining.subscribe":
            self._on_subscribe(result)
            return None
        name = self.id_is_authorize(request_id)
        if name is not None:
            if result is True:
                self.authorized.append(name)
            return None
        return None

    def _on_configure(self, request_id: int, result: Any) -> Message:
        if not isinstance(result, dict):
            raise ProtocolError("mining.configure result must be an object")
        mask = result.get("version-rolling.mask")
        if mask is not None:
            self.version_rolling_mask = _parse_hex_u32("version-rolling.mask", mask)
        min_bit = result.get("version-rolling.min-bit-count")
        if min_bit is not None:
            self.version_rolling_min_bit = _parse_hex_u32(
                "version-rolling.min-bit-count", min_bit
            )
        self.status = ClientStatus.CONFIGURED
        return self.subscribe(request_id)

    def _on_subscribe(self, result: Any) -> None:
        if not isinstance(result, list) or len(result) < 3:
            raise ProtocolError("mining.subscribe result must be a 3-item array")
        _, extranonce1, extranonce2_size = result[:3]
        if not isinstance(extranonce1, str):
            raise ProtocolError("extranonce1 must be a hex string")
        try:
            self.extranonce1 = bytes.fromhex(extranonce1)
        except ValueError as exc:
            raise ProtocolError(f"extranonce1 is not valid hex: {extranonce1!r}") from exc
        if isinstance(extranonce2_size, bool) or not isinstance(extranonce2_size, int):
            raise ProtocolError("extranonce2_size must be an integer")
        if extranonce2_size < 0:
            raise ProtocolError("extranonce2_size must not be negative")
        self.extranonce2_size = extranonce2_size
        self.status = ClientStatus.SUBSCRIBED

    def _handle_notification(self, method: Any, params: Any) -> None:
        if not isinstance(params, list):
            raise ProtocolError("params must be an array")
        if method == "mining.notify":
            self._on_notify(params)
        elif method == "mining.set_difficulty":
            self._on_set_difficulty(params)
        elif method in ("mining.set_extranonce", "mining.set_version_mask"):
            return
        else:
            raise ProtocolError(f"unexpected method: {method!r}")

    def _on_notify(self, params: list[Any]) -> None:
        if self.extranonce1 is None or self.extranonce2_size is None:
            raise ProtocolError("mining.notify received before subscription")
        try:
            notify = Notify.from_params(params)
            job = Job.from_notify(notify, self.extranonce1 + bytes(self.extranonce2_size))
        except ValueError as exc:
            raise ProtocolError(f"invalid mining.notify: {exc}") from exc
        self.miner.new_header(job)

    def _on_set_difficulty(self, params: list[Any]) -> None:
        if len(params) != 1 or isinstance(params[0], bool) or not isinstance(
            params[0], (int, float)
        ):
            raise ProtocolError("mining.set_difficulty takes one number")
        diff = float(params[0])
        target = target_from_difficulty(diff)
        if target is None:
            raise ProtocolError(f"Invalid difficulty: {diff}")
        self.miner.target = target