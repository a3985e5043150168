import asyncio
import json

import pytest

from stratumkit.sv1_client import DEFAULT_TARGET, Client, connect
from stratumkit.sv1_protocol import ClientStatus, ProtocolError

PREV_HASH = "00" * 32
NOTIFY = {
    "id": None,
    "method": "mining.notify",
    "params": ["1", PREV_HASH, "01", "02", [], "20000000", "1d00ffff", "5f5e1000", True],
}


def _subscribed_client(extranonce2_size=2):
    client = Client(5)
    configure_line = client.send_configure()
    request_id = json.loads(configure_line)["id"]
    client.handle_line(json.dumps({"id": request_id, "result": {}, "error": None}))
    client.handle_line(
        json.dumps(
            {
                "id": request_id,
                "result": [[["mining.notify", "1"]], "08000002", extranonce2_size],
                "error": None,
            }
        )
    )
    return client


def _drain(queue):
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def test_default_target_matches_demo_value():
    client = Client(1)
    assert client.miner.target == int.from_bytes(DEFAULT_TARGET, "big")


def test_custom_target_is_read_big_endian():
    target = bytes(31) + b"\x01"
    client = Client(1, target)
    assert client.miner.target == 1


def test_custom_target_wrong_length_rejected():
    with pytest.raises(ValueError):
        Client(1, bytes(31))


def test_send_configure_queues_line_and_sets_status():
    client = Client(2)
    line = client.send_configure()
    assert line.endswith("\n")
    assert json.loads(line)["method"] == "mining.configure"
    assert client.status is ClientStatus.CONFIGURED
    assert _drain(client.outgoing) == [line]


def test_send_configure_twice_rejected():
    client = Client(2)
    client.send_configure()
    with pytest.raises(ProtocolError):
        client.send_configure()


def test_send_authorize_before_configure_rejected():
    client = Client(3)
    with pytest.raises(ProtocolError):
        client.send_authorize()


def test_configure_reply_triggers_subscribe():
    client = Client(4)
    request_id = json.loads(client.send_configure())["id"]
    _drain(client.outgoing)
    reply = client.handle_line(json.dumps({"id": request_id, "result": {}, "error": None}))
    assert reply["method"] == "mining.subscribe"
    assert reply["id"] == request_id
    queued = _drain(client.outgoing)
    assert [json.loads(line) for line in queued] == [reply]


def test_subscribe_reply_sets_subscribed():
    client = _subscribed_client()
    assert client.status is ClientStatus.SUBSCRIBED
    assert client.session.extranonce1 == bytes.fromhex("08000002")


def test_send_authorize_after_subscribe():
    client = _subscribed_client()
    _drain(client.outgoing)
    line = client.send_authorize()
    message = json.loads(line)
    assert message["method"] == "mining.authorize"
    assert message["params"] == ["user", "password"]
    assert client.session.id_is_authorize(message["id"]) == "user"


def test_share_to_submit_none_before_subscribe():
    client = Client(6)
    assert client.share_to_submit(1, 1, 1) is None


def test_share_to_submit_after_subscribe():
    client = _subscribed_client(extranonce2_size=2)
    line = client.share_to_submit(0x10, 7, 0x20)
    message = json.loads(line)
    assert line.endswith("\n")
    assert message["method"] == "mining.submit"
    assert message["params"][0] == "user"
    assert message["params"][1] == "7"
    assert message["params"][2] == "0000"
    assert int(message["params"][3], 16) == 0x20
    assert int(message["params"][4], 16) == 0x10


def test_notify_sets_miner_header():
    client = _subscribed_client()
    reply = client.handle_line(json.dumps(NOTIFY))
    assert reply is None
    assert client.miner.job_id == 1
    assert client.miner.header.prev_blockhash == bytes(32)
    assert client.miner.header.nonce == 0


def test_invalid_json_line_rejected():
    client = Client(8)
    with pytest.raises(ProtocolError):
        client.handle_line("not json")


@pytest.mark.asyncio
async def test_connect_full_session_single_submit():
    received = []

    async def handler(reader, writer):
        async def read_json():
            line = await reader.readline()
            message = json.loads(line)
            received.append(message)
            return message

        async def write_json(message):
            writer.write(json.dumps(message).encode() + b"\n")
            await writer.drain()

        configure = await read_json()
        await write_json({"id": configure["id"], "result": {}, "error": None})
        subscribe = await read_json()
        await write_json(
            {
                "id": subscribe["id"],
                "result": [[["mining.notify", "1"]], "08000002", 4],
                "error": None,
            }
        )
        authorize = await read_json()
        await write_json({"id": authorize["id"], "result": True, "error": None})
        await write_json(NOTIFY)
        await read_json()
        writer.close()

    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    async with server:
        await asyncio.wait_for(
            connect(7, ("127.0.0.1", port), True, bytes([0xFF]) * 32), timeout=20
        )

    methods = [message["method"] for message in received]
    assert methods == [
        "mining.configure",
        "mining.subscribe",
        "mining.authorize",
        "mining.submit",
    ]
    assert received[1]["id"] == received[0]["id"]
    assert received[2]["params"] == ["user", "password"]
    submit_params = received[3]["params"]
    assert submit_params[:3] == ["user", "1", "00000000"]

    reference = _subscribed_client(extranonce2_size=4)
    expected_line = reference.share_to_submit(
        int(submit_params[4], 16), 1, int(submit_params[3], 16)
    )
    assert json.loads(expected_line)["params"] == submit_params


def test_invalid_address_rejected():
    with pytest.raises(ValueError):
        asyncio.run(connect(1, "no-port-here", False, None))