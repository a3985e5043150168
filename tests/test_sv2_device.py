import itertools
import logging
from unittest import mock

import pytest

from stratumkit.sv1_protocol import ProtocolError
from stratumkit.sv2_device import (
    Device,
    NewMiningJob,
    SetNewPrevHash,
    open_channel,
    setup_connection_message,
)

PREV = bytes(range(32))
ROOT = bytes(range(32, 64))


def _job(job_id, future, version=0x20000000):
    return NewMiningJob(
        channel_id=1,
        job_id=job_id,
        min_ntime=None if future else 1000,
        version=version,
        merkle_root=ROOT,
    )


def _prev(job_id):
    return SetNewPrevHash(channel_id=1, job_id=job_id, prev_hash=PREV, min_ntime=1000, nbits=0x1D00FFFF)


def test_setup_connection_fields():
    msg = setup_connection_message(("127.0.0.1", 34255), "dev-1")
    assert msg.protocol == 0
    assert (msg.min_version, msg.max_version) == (2, 2)
    assert msg.flags == 1
    assert msg.endpoint_host == "127.0.0.1"
    assert msg.endpoint_port == 34255
    assert msg.device_id == "dev-1"
    assert (msg.vendor, msg.hardware_version, msg.firmware) == ("", "", "")


def test_setup_connection_from_string_without_device_id():
    msg = setup_connection_message("10.0.0.1:3333", None)
    assert msg.endpoint_host == "10.0.0.1"
    assert msg.endpoint_port == 3333
    assert msg.device_id == ""


def test_setup_connection_rejects_bad_input():
    with pytest.raises(ValueError):
        setup_connection_message(("127.0.0.1", 1), "x" * 256)
    with pytest.raises(ValueError):
        setup_connection_message(("not-an-ip", 1), None)


def test_is_future():
    assert _job(1, True).is_future() is True
    assert _job(1, False).is_future() is False


def test_open_channel_fields_and_multiplier():
    with mock.patch("time.perf_counter", side_effect=itertools.count(0, 3).__next__):
        plain = open_channel("dev", None, 0)
    with mock.patch("time.perf_counter", side_effect=itertools.count(0, 3).__next__):
        doubled = open_channel("dev", 2.0, 0)
    assert plain.request_id == 10
    assert plain.user_identity == "dev"
    assert plain.max_target == b"\xff" * 32
    assert plain.nominal_hash_rate > 0
    assert doubled.nominal_hash_rate == pytest.approx(2 * plain.nominal_hash_rate)


def test_channel_success_sets_channel_and_target():
    device = Device()
    device.handle_open_standard_mining_channel_success(7, 3, 10, bytes([1]) + bytes(31))
    assert device.channel_opened is True
    assert device.channel_id == 7
    assert device.miner.target == 1


def test_build_share_requires_channel():
    with pytest.raises(ProtocolError):
        Device().build_share(1, 2, 3, 4)


def test_build_share_sequence_numbers_increase():
    device = Device()
    device.handle_open_standard_mining_channel_success(7, 3, 10, bytes(32))
    first = device.build_share(11, 2, 0x20000000, 99)
    second = device.build_share(12, 2, 0x20000000, 99)
    assert first.sequence_number + 1 == second.sequence_number
    assert (first.channel_id, first.nonce, first.job_id, first.ntime) == (7, 11, 2, 99)


def test_active_job_without_prev_hash_fails():
    with pytest.raises(ProtocolError):
        Device().handle_new_mining_job(_job(1, False))


def test_prev_hash_then_active_job_starts_mining():
    device = Device()
    device.take_work_notification()
    device.handle_set_new_prev_hash(_prev(5))
    assert device.miner.header is None
    job = _job(1, False)
    device.handle_new_mining_job(job)
    header = device.miner.header
    assert header.prev_blockhash == PREV
    assert header.merkle_root == ROOT
    assert header.nonce == 0
    assert header.bits == 0x1D00FFFF
    assert device.miner.job_id == 1
    assert device.jobs == [job]
    assert device.take_work_notification() is True
    assert device.take_work_notification() is False


def test_future_job_activated_by_prev_hash():
    device = Device()
    job = _job(4, True)
    device.handle_new_mining_job(job)
    assert device.miner.header is None
    assert device.jobs == [job]
    device.handle_set_new_prev_hash(_prev(4))
    assert device.miner.job_id == 4
    assert device.miner.header.prev_blockhash == PREV
    assert device.prev_hash == _prev(4)


def test_two_matching_future_jobs_fail():
    device = Device()
    device.handle_new_mining_job(_job(4, True))
    device.handle_new_mining_job(_job(4, True))
    with pytest.raises(ProtocolError):
        device.handle_set_new_prev_hash(_prev(4))


def test_set_target_and_notification():
    device = Device()
    assert device.take_work_notification() is True
    device.handle_set_target(1, bytes(31) + b"\x01")
    assert device.miner.target == 1 << 248
    assert device.take_work_notification() is True


def test_submit_shares_error_decoding():
    device = Device()
    assert device.handle_submit_shares_error(b"stale-share") == "stale-share"
    assert device.handle_submit_shares_error(b"\xff\xfe") == "unknown error code"


def test_submit_shares_success_logs(caplog):
    device = Device()
    with caplog.at_level(logging.INFO):
        device.handle_submit_shares_success("ok")
    assert "Received SubmitSharesSuccess" in caplog.text