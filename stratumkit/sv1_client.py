"""Stratum V1 mock mining device that connects to a pool or translator."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import threading
import time
from collections.abc import Sequence
from typing import Any

from stratumkit.sv1_miner import Miner
from stratumkit.sv1_protocol import ClientStatus, ProtocolError, Session

log = logging.getLogger(__name__)

DEFAULT_UPSTREAM = "127.0.0.1:34255"
DEFAULT_CLIENT_ID = 80
USER_NAME = "user"
PASSWORD = "password"
# Demo target used until the upstream sends a difficulty.
DEFAULT_TARGET = bytes([0, 0, 0, 0, 255, 255, 255, 255]) + bytes(24)

_RETRY_DELAY_SECS = 1.0
_SHARE_DELAY_SECS = 0.2
_IDLE_DELAY_SECS = 0.01
_U32_MASK = 0xFFFFFFFF

Share = tuple[int, int, int, int]


def _encode(message: dict[str, Any]) -> str:
    return json.dumps(message, separators=(",", ":")) + "\n"


def _parse_address(upstream_addr: str | tuple[str, int]) -> tuple[str, int]:
    if isinstance(upstream_addr, tuple):
        host, port = upstream_addr
        return str(host), int(port)
    host, sep, port = upstream_addr.rpartition(":")
    if not sep or not host or not port.isdigit() or int(port) > 0xFFFF:
        raise ValueError(f"Invalid upstream address: {upstream_addr!r}")
    return host.strip("[]"), int(port)


class Client:
    """A V1 mining client: protocol session, miner and outgoing message queue."""

    def __init__(self, client_id: int, custom_target: bytes | None = None) -> None:
        target = DEFAULT_TARGET if custom_target is None else bytes(custom_target)
        if len(target) != 32:
            raise ValueError(f"target must be 32 bytes, got {len(target)}")
        self.miner = Miner()
        self.miner.new_target(int.from_bytes(target, "big"))
        self.session = Session(client_id, miner=self.miner)
        self.outgoing: asyncio.Queue[str] = asyncio.Queue()
        self._lock = threading.Lock()

    @property
    def status(self) -> ClientStatus:
        return self.session.status

    def _send(self, message: dict[str, Any]) -> str:
        line = _encode(message)
        log.info(" - Send: %s", line.rstrip("\n"))
        self.outgoing.put_nowait(line)
        return line

    def send_configure(self) -> str:
        """Queue a ``mining.configure`` request and mark the client configured."""
        if self.session.status is not ClientStatus.INIT:
            raise ProtocolError("mining.configure can only be sent from the initial state")
        request_id = int(time.time())
        with self._lock:
            message = self.session.configure(request_id)
        line = self._send(message)
        self.session.status = ClientStatus.CONFIGURED
        return line

    def send_authorize(self) -> str:
        """Queue a ``mining.authorize`` request for the default user."""
        request_id = int(time.time())
        with self._lock:
            message = self.session.authorize(request_id, USER_NAME, PASSWORD)
        return self._send(message)

    def handle_line(self, line: str) -> dict[str, Any] | None:
        """Handle one line from the upstream; queue and return any reply."""
        with self._lock:
            reply = self.session.parse_line(line)
        if reply is not None:
            self._send(reply)
        return reply

    def share_to_submit(self, nonce: int, job_id: int, ntime: int) -> str | None:
        """Encode a found share as a ``mining.submit`` line, or None if not subscribed."""
        if self.session.status is not ClientStatus.SUBSCRIBED:
            return None
        return _encode(self.session.submit(nonce, job_id, ntime))

    def _mine(
        self,
        loop: asyncio.AbstractEventLoop,
        shares: asyncio.Queue[Share],
        stop: threading.Event,
    ) -> None:
        while not stop.is_set():
            share: Share | None = None
            with self._lock:
                header = self.miner.header
                if header is not None and self.miner.next_share():
                    share = (header.nonce, self.miner.job_id, self.miner.version, header.time)
            if share is not None:
                try:
                    loop.call_soon_threadsafe(shares.put_nowait, share)
                except RuntimeError:
                    log.warning("Share channel is not available")
                    break
                stop.wait(_SHARE_DELAY_SECS)
            with self._lock:
                header = self.miner.header
                if header is not None:
                    header.nonce = (header.nonce + 1) & _U32_MASK
            if header is None:
                stop.wait(_IDLE_DELAY_SECS)


async def _open(host: str, port: int) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    while True:
        try:
            return await asyncio.open_connection(host, port)
        except OSError:
            log.info(
                "SV1 Miner: Failed to connect to upstream at %s:%d Retrying in 1 second.",
                host,
                port,
            )
            await asyncio.sleep(_RETRY_DELAY_SECS)


async def connect(
    client_id: int,
    upstream_addr: str | tuple[str, int],
    single_submit: bool,
    custom_target: bytes | None,
) -> None:
    """Connect to an upstream, hand-shake, mine and submit shares until disconnected."""
    host, port = _parse_address(upstream_addr)
    reader, writer = await _open(host, port)
    client = Client(client_id, custom_target)
    incoming: asyncio.Queue[str | None] = asyncio.Queue()
    shares: asyncio.Queue[Share] = asyncio.Queue()
    stop_submitting = asyncio.Event()
    stop_mining = threading.Event()

    async def read_lines() -> None:
        try:
            while line := await reader.readline():
                await incoming.put(line.decode().rstrip("\r\n"))
            log.error("Error reading from socket")
        except (OSError, UnicodeDecodeError) as exc:
            log.error("Error reading from socket: %s", exc)
        finally:
            log.error("Reader task terminated.")
            await incoming.put(None)

    async def write_lines() -> None:
        while True:
            line = await client.outgoing.get()
            try:
                writer.write(line.encode())
                await writer.drain()
            except OSError as exc:
                log.error("SV1 Miner: Failed to write message to socket: %s", exc)
                return
            if single_submit and "mining.submit" in line:
                stop_submitting.set()

    async def submit_shares() -> None:
        while not stop_submitting.is_set():
            nonce, job_id, _version, ntime = await shares.get()
            if stop_submitting.is_set():
                break
            line = client.share_to_submit(nonce, job_id, ntime)
            if line is not None:
                await client.outgoing.put(line)
        log.warning("Stopping miner")

    tasks = [
        asyncio.create_task(read_lines()),
        asyncio.create_task(write_lines()),
        asyncio.create_task(submit_shares()),
    ]
    loop = asyncio.get_running_loop()
    mining_thread = threading.Thread(
        target=client._mine, args=(loop, shares, stop_mining), daemon=True
    )
    try:
        client.send_configure()
        mining_thread.start()
        while client.status is ClientStatus.CONFIGURED:
            line = await incoming.get()
            if line is None:
                return
            client.handle_line(line)
        client.send_authorize()
        while (line := await incoming.get()) is not None:
            client.handle_line(line)
        log.warning("Error reading from socket via incoming channel")
    finally:
        stop_mining.set()
        if mining_thread.is_alive():
            await asyncio.to_thread(mining_thread.join)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


def main(argv: Sequence[str] | None = None) -> int:
    """Run a V1 mock miner against a local upstream."""
    parser = argparse.ArgumentParser(prog="mining-device-sv1", description="SV1 mock miner")
    parser.add_argument("--address", default=DEFAULT_UPSTREAM, help="upstream host:port")
    parser.add_argument("--id", dest="client_id", type=int, default=DEFAULT_CLIENT_ID)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    try:
        address = _parse_address(args.address)
    except ValueError as exc:
        parser.error(str(exc))
    try:
        asyncio.run(connect(args.client_id, address, False, None))
    except KeyboardInterrupt:
        log.warning("Stopping sv1 miner")
    return 0