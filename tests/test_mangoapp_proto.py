import struct

import pytest

from hudmetrics.mangoapp_proto import ControlAction, ControlMessage, FrameMessage


def _frame(version=1, full=True):
    data = struct.pack("=qIIQBB", 1, version, 42, 16_000_000, 1, 2)
    if full:
        data += struct.pack("=QQ", 15_000_000, 3_000_000)
    return data


def test_frame_full_message():
    msg = FrameMessage.from_bytes(_frame())
    assert msg.version == 1
    assert msg.pid == 42
    assert msg.visible_frametime_ns == 16_000_000
    assert (msg.fsr_upscale, msg.fsr_sharpness) == (1, 2)
    assert msg.latency_ns == 3_000_000


def test_frame_older_sender_lacks_debug_fields():
    msg = FrameMessage.from_bytes(_frame(full=False))
    assert msg.fsr_sharpness == 2
    assert msg.app_frametime_ns is None
    assert msg.latency_ns is None


def test_frame_bad_version():
    with pytest.raises(ValueError):
        FrameMessage.from_bytes(_frame(version=2))


def test_frame_too_short():
    with pytest.raises(ValueError):
        FrameMessage.from_bytes(b"\x01\x00")


def test_control_round_trip():
    msg = ControlMessage(
        no_display=ControlAction.TOGGLE,
        log_session=ControlAction.ON,
        log_session_name="session",
        reload_config=ControlAction.OFF,
    )
    assert ControlMessage.from_bytes(msg.to_bytes()) == msg


def test_control_wire_header_and_field():
    data = ControlMessage(no_display=ControlAction.TOGGLE).to_bytes()
    assert struct.unpack_from("=qII", data) == (2, 1, 1)
    assert data[16] == 3


def test_control_name_too_long():
    with pytest.raises(ValueError):
        ControlMessage(log_session_name="x" * 65).to_bytes()


def test_control_too_short():
    with pytest.raises(ValueError):
        ControlMessage.from_bytes(b"\x00" * 10)