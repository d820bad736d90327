"""Wire formats of the messages exchanged with the overlay app."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

FRAME_MSG_TYPE = 1
CONTROL_MSG_TYPE = 2
SUPPORTED_VERSION = 1

_HEADER = struct.Struct("=qI")
_FRAME_FIELDS = (
    ("pid", "I"),
    ("visible_frametime_ns", "Q"),
    ("fsr_upscale", "B"),
    ("fsr_sharpness", "B"),
    ("app_frametime_ns", "Q"),
    ("latency_ns", "Q"),
)
_CONTROL = struct.Struct("=qIIBB64sB")
_NAME_SIZE = 64


class ControlAction(IntEnum):
    """What a control field asks for: nothing, set, clear or toggle."""

    IGNORE = 0
    ON = 1
    OFF = 2
    TOGGLE = 3


@dataclass
class FrameMessage:
    """A frame timing message; fields not carried by the sender are None."""

    version: int
    msg_type: int = FRAME_MSG_TYPE
    pid: int | None = None
    visible_frametime_ns: int | None = None
    fsr_upscale: int | None = None
    fsr_sharpness: int | None = None
    app_frametime_ns: int | None = None
    latency_ns: int | None = None

    @classmethod
    def from_bytes(cls, data: bytes) -> "FrameMessage":
        """Parse a message; later fields may be missing from older senders."""
        if len(data) < _HEADER.size:
            raise ValueError("message shorter than its header")
        msg_type, version = _HEADER.unpack_from(data)
        if version != SUPPORTED_VERSION:
            raise ValueError(f"Unsupported mangoapp struct version: {version}")
        message = cls(version=version, msg_type=msg_type)
        offset = _HEADER.size
        for name, fmt in _FRAME_FIELDS:
            size = struct.calcsize("=" + fmt)
            if offset + size > len(data):
                break
            (value,) = struct.unpack_from("=" + fmt, data, offset)
            setattr(message, name, value)
            offset += size
        return message


@dataclass
class ControlMessage:
    """A control request: show/hide, logging and config reload."""

    no_display: ControlAction = ControlAction.IGNORE
    log_session: ControlAction = ControlAction.IGNORE
    log_session_name: str = ""
    reload_config: ControlAction = ControlAction.IGNORE
    msg_type: int = CONTROL_MSG_TYPE
    ctrl_msg_type: int = 1
    version: int = 1

    def to_bytes(self) -> bytes:
        name = self.log_session_name.encode("utf-8")
        if len(name) > _NAME_SIZE:
            raise ValueError(f"log session name longer than {_NAME_SIZE} bytes")
        return _CONTROL.pack(
            self.msg_type,
            self.ctrl_msg_type,
            self.version,
            int(self.no_display),
            int(self.log_session),
            name,
            int(self.reload_config),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "ControlMessage":
        if len(data) < _CONTROL.size:
            raise ValueError("control message too short")
        msg_type, ctrl_type, version, no_display, log_session, name, reload_config = (
            _CONTROL.unpack_from(data)
        )
        return cls(
            no_display=ControlAction(no_display),
            log_session=ControlAction(log_session),
            log_session_name=name.split(b"\0", 1)[0].decode("utf-8", errors="replace"),
            reload_config=ControlAction(reload_config),
            msg_type=msg_type,
            ctrl_msg_type=ctrl_type,
            version=version,
        )