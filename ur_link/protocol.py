"""
Wire-level constants for the UR controller interfaces.

This module only names message kinds and identifies frames. Field
layouts live in the decoders package.
"""

import struct
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, Optional

# Fixed controller ports
PROBE_PORT = 30001
SECONDARY_PORT = 30002
REALTIME_PORT = 30003

# Handshakes reporting an older major version are rejected
MIN_SUPPORTED_MAJOR = 2

FRAME_HEADER = struct.Struct(">iB")


@dataclass(frozen=True)
class DecodeResult:
    """
    Tagged outcome of a decode step: either a value or an error message.
    """
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> 'DecodeResult':
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> 'DecodeResult':
        return cls(error=error)


class MessageType(IntEnum):
    """Top-level message kind on the config channel."""
    ROBOT_STATE = 16
    ROBOT_MESSAGE = 20
    PROGRAM_STATE_MESSAGE = 25


class PackageType(IntEnum):
    """Sub-package kind nested inside a ROBOT_STATE message."""
    ROBOT_MODE_DATA = 0
    JOINT_DATA = 1
    TOOL_DATA = 2
    MASTERBOARD_DATA = 3
    CARTESIAN_INFO = 4
    KINEMATICS_INFO = 5
    CONFIGURATION_DATA = 6
    FORCE_MODE_DATA = 7
    ADDITIONAL_INFO = 8
    CALIBRATION_DATA = 9


class RobotMessageType(IntEnum):
    """Sub-kind of a ROBOT_MESSAGE."""
    TEXT = 0
    PROGRAM_LABEL = 1
    VARIABLE_UPDATE = 2
    VERSION = 3
    SAFETY_MODE = 5
    ERROR_CODE = 6
    KEY = 7
    REQUEST_VALUE = 9
    RUNTIME_EXCEPTION = 10


class RobotMode(IntEnum):
    """Robot mode as reported by 3.x controllers."""
    DISCONNECTED = 0
    CONFIRM_SAFETY = 1
    BOOTING = 2
    POWER_OFF = 3
    POWER_ON = 4
    IDLE = 5
    BACKDRIVE = 6
    RUNNING = 7
    UPDATING_FIRMWARE = 8


class ConnectionState(Enum):
    """Lifecycle of a single channel."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"


@dataclass(frozen=True)
class ProtocolVersion:
    """
    Controller firmware version, learned once from the version handshake.

    Ordering compares (major, minor) only; the revision is informational.
    """
    major: int
    minor: int
    revision: int = 0

    def at_least(self, major: int, minor: int = 0) -> bool:
        return (self.major, self.minor) >= (major, minor)

    def below(self, major: int, minor: int = 0) -> bool:
        return (self.major, self.minor) < (major, minor)

    def as_float(self) -> float:
        """Legacy numeric form: major + 0.1 * minor + 1e-7 * revision."""
        return self.major + 0.1 * self.minor + 0.0000001 * self.revision

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.revision}"


@dataclass(frozen=True)
class FrameHeader:
    """Length (inclusive of the header itself) and kind of a config-channel message."""
    length: int
    type: int

    SIZE = FRAME_HEADER.size


def decode_frame(buffer: bytes, offset: int = 0) -> DecodeResult:
    """
    Read the header of the message starting at offset.

    Returns:
        DecodeResult wrapping a FrameHeader, or an error when the buffer is
        too short or the declared length cannot hold a header
    """
    if len(buffer) - offset < FRAME_HEADER.size:
        return DecodeResult.failure(f"short header: {len(buffer) - offset} bytes")

    length, msg_type = FRAME_HEADER.unpack_from(buffer, offset)
    if length < FRAME_HEADER.size:
        return DecodeResult.failure(f"invalid message length: {length}")

    return DecodeResult.success(FrameHeader(length, msg_type))


def message_type_of(header: FrameHeader) -> Optional[MessageType]:
    """Map a header to a known MessageType, or None for anything else."""
    try:
        return MessageType(header.type)
    except ValueError:
        return None
