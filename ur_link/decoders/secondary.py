"""
Decoder for the config (secondary) channel.

Messages are length-prefixed and nest further length-prefixed packages:

    [int32 length][uint8 type] payload...

Only ROBOT_STATE (robot mode + masterboard packages) and the VERSION
robot message are decoded; every other message or package is skipped by
its declared length. Field widths that changed between firmware releases
are selected once from a `SecondaryLayout` built at handshake time.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Optional

from ..exceptions import UnsupportedVersionError
from ..protocol import (
    FRAME_HEADER,
    MIN_SUPPORTED_MAJOR,
    DecodeResult,
    MessageType,
    PackageType,
    ProtocolVersion,
    RobotMessageType,
    decode_frame,
    message_type_of,
)
from ..state import MasterboardSnapshot, RobotModeSnapshot, RobotState, VersionInfo
from .base import BufferReader


@dataclass(frozen=True)
class SecondaryLayout:
    """Version-dependent field widths of the config-channel packages."""
    wide_digital_io: bool
    has_control_mode: bool
    float_euromap_power: bool

    @classmethod
    def for_version(cls, version: ProtocolVersion) -> 'SecondaryLayout':
        return cls(
            wide_digital_io=version.at_least(3, 0),
            has_control_mode=version.major >= 3,
            float_euromap_power=version.at_least(3, 0),
        )


def check_supported(version: ProtocolVersion):
    """
    Raises:
        UnsupportedVersionError: If the major version is below the minimum
    """
    if version.major < MIN_SUPPORTED_MAJOR:
        raise UnsupportedVersionError(
            f"unsupported firmware version {version} (minimum major version is {MIN_SUPPORTED_MAJOR})"
        )


def decode_version(reader: BufferReader, timestamp: int, source: int) -> DecodeResult:
    """
    Decode the body of a VERSION robot message.

    The reader must start right after the robot message type byte and end
    at the end of the message; trailing bytes are the build date.
    """
    try:
        name_size = reader.int8()
        project_name = reader.raw(name_size).decode("ascii", errors="replace")
        major = reader.uint8()
        minor = reader.uint8()
        revision = reader.int32()
        build_date = reader.rest().split(b"\x00", 1)[0].decode("ascii", errors="replace")
    except struct.error as e:
        return DecodeResult.failure(f"truncated version message: {e}")

    return DecodeResult.success(VersionInfo(
        timestamp=timestamp,
        source=source,
        project_name=project_name,
        major_version=major,
        minor_version=minor,
        svn_revision=revision,
        build_date=build_date,
    ))


def decode_robot_mode(reader: BufferReader, layout: SecondaryLayout) -> DecodeResult:
    try:
        snapshot = RobotModeSnapshot(
            timestamp=reader.uint64(),
            is_robot_connected=reader.boolean(),
            is_real_robot_enabled=reader.boolean(),
            is_power_on_robot=reader.boolean(),
            is_emergency_stopped=reader.boolean(),
            is_protective_stopped=reader.boolean(),
            is_program_running=reader.boolean(),
            is_program_paused=reader.boolean(),
            robot_mode=reader.uint8(),
        )
        if layout.has_control_mode:
            snapshot.control_mode = reader.uint8()
            snapshot.target_speed_fraction = reader.float64()
        snapshot.speed_scaling = reader.float64()
    except struct.error as e:
        return DecodeResult.failure(f"truncated robot mode data: {e}")

    return DecodeResult.success(snapshot)


def decode_masterboard(reader: BufferReader, layout: SecondaryLayout) -> DecodeResult:
    board = MasterboardSnapshot()
    try:
        if layout.wide_digital_io:
            board.digital_input_bits = reader.int32() & 0xFFFFFFFF
            board.digital_output_bits = reader.int32() & 0xFFFFFFFF
        else:
            board.digital_input_bits = reader.uint16()
            board.digital_output_bits = reader.uint16()

        board.analog_input_range0 = reader.int8()
        board.analog_input_range1 = reader.int8()
        board.analog_input0 = reader.float64()
        board.analog_input1 = reader.float64()
        board.analog_output_domain0 = reader.int8()
        board.analog_output_domain1 = reader.int8()
        board.analog_output0 = reader.float64()
        board.analog_output1 = reader.float64()
        board.master_board_temperature = reader.float32()
        board.robot_voltage_48v = reader.float32()
        board.robot_current = reader.float32()
        board.master_io_current = reader.float32()
        board.safety_mode = reader.uint8()
        board.master_on_off_state = reader.uint8()
        board.euromap67_interface_installed = reader.int8() != 0

        if board.euromap67_interface_installed:
            board.euromap_input_bits = reader.int32() & 0xFFFFFFFF
            board.euromap_output_bits = reader.int32() & 0xFFFFFFFF
            if layout.float_euromap_power:
                board.euromap_voltage = reader.float32()
                board.euromap_current = reader.float32()
            else:
                board.euromap_voltage = float(reader.int16())
                board.euromap_current = float(reader.int16())
    except struct.error as e:
        return DecodeResult.failure(f"truncated masterboard data: {e}")

    return DecodeResult.success(board)


class SecondaryDecoder:
    """
    Walks config-channel buffers and applies decoded packages to a RobotState.

    In handshake mode the decoder accepts a VERSION message and fixes the
    layout; afterwards version messages are ignored so the negotiated
    version never changes for the lifetime of the connection.
    """

    def __init__(self, state: RobotState, version: Optional[ProtocolVersion] = None):
        self.logger = logging.getLogger(__name__)
        self.state = state
        self.version = version
        self.layout = SecondaryLayout.for_version(version) if version else None
        self.robot_state_messages = 0

    @property
    def handshake_complete(self) -> bool:
        return self.version is not None

    def unpack(self, buffer: bytes) -> int:
        """
        Decode every complete message in buffer.

        A message that extends past the end of the buffer stops decoding;
        its bytes are not consumed.

        Returns:
            Number of bytes consumed from the front of buffer
        """
        offset = 0
        while offset < len(buffer):
            result = decode_frame(buffer, offset)
            if not result.ok:
                if len(buffer) - offset >= FRAME_HEADER.size:
                    self.logger.warning(f"Dropping config channel data: {result.error}")
                    return len(buffer)
                return offset

            header = result.value
            if offset + header.length > len(buffer):
                return offset

            message_type = message_type_of(header)
            if message_type == MessageType.ROBOT_MESSAGE:
                self._unpack_robot_message(buffer, offset, header.length)
            elif message_type == MessageType.ROBOT_STATE:
                self._unpack_robot_state(buffer, offset, header.length)
            else:
                # PROGRAM_STATE_MESSAGE and unknown kinds are skipped
                self.logger.debug(f"Skipping message type {header.type} ({header.length} bytes)")

            offset += header.length
        return offset

    def _unpack_robot_message(self, buffer: bytes, offset: int, length: int):
        reader = BufferReader(buffer, offset + FRAME_HEADER.size, offset + length)
        try:
            timestamp = reader.uint64()
            source = reader.int8()
            robot_message_type = reader.uint8()
        except struct.error as e:
            self.logger.warning(f"Truncated robot message: {e}")
            return

        if robot_message_type != RobotMessageType.VERSION:
            return

        if self.handshake_complete:
            self.logger.debug("Ignoring version message after handshake")
            return

        result = decode_version(reader, timestamp, source)
        if not result.ok:
            self.logger.warning(result.error)
            return

        info = result.value
        self.state.set_version(info)
        self.version = info.protocol_version
        self.layout = SecondaryLayout.for_version(self.version)
        self.logger.debug(f"Version message: {info.project_name} {self.version} ({info.build_date})")

    def _unpack_robot_state(self, buffer: bytes, offset: int, length: int):
        if self.layout is None:
            self.logger.warning("Robot state received before version handshake, dropping")
            return

        end = offset + length
        sub_offset = offset + FRAME_HEADER.size

        while sub_offset < end:
            result = decode_frame(buffer, sub_offset)
            if not result.ok or sub_offset + result.value.length > end:
                self.logger.warning(f"Malformed robot state package at offset {sub_offset - offset}")
                break

            package = result.value
            reader = BufferReader(buffer, sub_offset + FRAME_HEADER.size, sub_offset + package.length)

            if package.type == PackageType.ROBOT_MODE_DATA:
                decoded = decode_robot_mode(reader, self.layout)
                if decoded.ok:
                    self.state.update_robot_mode(decoded.value)
                else:
                    self.logger.warning(decoded.error)

            elif package.type == PackageType.MASTERBOARD_DATA:
                decoded = decode_masterboard(reader, self.layout)
                if decoded.ok:
                    self.state.update_masterboard(decoded.value)
                else:
                    self.logger.warning(decoded.error)

            sub_offset += package.length

        self.robot_state_messages += 1
        self.state.notify_updated()
