"""
Realtime (port 30003) channel with the velocity safety watchdog.

The controller pushes one fixed-size frame per control tick. Velocity
commands go the other way as short `speedj` script lines. Every decoded
frame advances the watchdog counter; a non-zero velocity command resets
it. When the counter reaches `safety_count_max` the channel sends an
all-zero velocity command itself, so the arm stops if the application
stops refreshing its commands.

Each frame is read as its 4-byte declared length, then the body. A
declared length outside 4..MAX_FRAME_LENGTH (4096) disconnects the
channel instead of dropping the frame: with no valid length there is no
way to find where the next frame starts. A frame of sane length that
does not fit the negotiated layout is dropped and the stream continues.
"""

import logging
import threading
from typing import Callable, Optional, Sequence

from . import script
from .decoders.realtime import LENGTH_FIELD, RealtimeDecoder, layout_for
from .exceptions import UnsupportedVersionError
from .protocol import REALTIME_PORT, ConnectionState, ProtocolVersion
from .state import RealtimeState
from .transport import SocketTransport

# Frames larger than this cannot be realtime frames; the stream is corrupt
MAX_FRAME_LENGTH = 4096

ZERO_SPEED = (0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

Connector = Callable[[str, int, float], Optional[SocketTransport]]


class RealtimeChannel:
    """
    High-rate joint telemetry plus velocity command output.
    """

    def __init__(self, host: str, version: ProtocolVersion, port: int = REALTIME_PORT,
                 safety_count_max: int = 12, poll_timeout: float = 0.5, connect_timeout: float = 5.0,
                 speed_acceleration: float = 100.0, speedj_time: float = 0.02,
                 connector: Connector = SocketTransport.connect):
        """
        Args:
            host: Controller address
            version: Firmware version negotiated on the config channel
            port: Realtime port
            safety_count_max: Frames without a fresh velocity command before motion is stopped
            poll_timeout: Receive loop wake-up interval, in seconds
            connect_timeout: Connect timeout, in seconds
            speed_acceleration: Default joint acceleration for speedj
            speedj_time: Duration each speedj command stays active, in seconds
            connector: Factory returning a connected transport or None

        Raises:
            UnsupportedVersionError: If no frame layout exists for version
        """
        self.logger = logging.getLogger(__name__)

        layout = layout_for(version)
        if layout is None:
            raise UnsupportedVersionError(f"unsupported firmware version {version}: no realtime frame layout")

        self.host = host
        self.port = port
        self.version = version
        self.decoder = RealtimeDecoder(layout)
        self.state = RealtimeState()
        self.poll_timeout = poll_timeout
        self.speed_acceleration = speed_acceleration
        self.speedj_time = speedj_time

        self.safety_count_max = safety_count_max
        # Start past the trigger point so nothing is sent before the first command
        self.safety_count = safety_count_max + 1
        self._watchdog_lock = threading.Lock()
        self._send_lock = threading.Lock()

        self.keepalive = False
        self._thread: Optional[threading.Thread] = None
        self.dropped_frames = 0

        self.logger.info(f"Realtime port: Connecting to {host}:{port} (layout {layout.name}, "
                         f"{layout.frame_length}{'' if layout.exact else '+'} bytes)")
        self.connection_state = ConnectionState.CONNECTING
        self.transport = connector(host, port, connect_timeout)
        if self.transport is None:
            self.logger.error(f"Error connecting to realtime port {port}")
            self.connection_state = ConnectionState.DISCONNECTED

    @classmethod
    def from_config(cls, config, version: ProtocolVersion,
                    connector: Connector = SocketTransport.connect) -> 'RealtimeChannel':
        return cls(
            config.robot_host,
            version,
            port=config.realtime_port,
            safety_count_max=config.safety_count_max,
            poll_timeout=config.poll_timeout,
            connect_timeout=config.connect_timeout,
            speed_acceleration=config.speed_acceleration,
            speedj_time=config.speedj_time,
            connector=connector,
        )

    @property
    def connected(self) -> bool:
        return self.connection_state == ConnectionState.STREAMING

    def start(self) -> bool:
        if self.transport is None:
            self.logger.error(f"Error connecting to realtime port {self.port}")
            return False

        self.keepalive = True
        self.connection_state = ConnectionState.STREAMING
        self._thread = threading.Thread(target=self._run, name="ur-realtime-channel", daemon=True)
        self._thread.start()
        return True

    def halt(self):
        """Stop the receive loop; it sends a final zero velocity and closes the socket."""
        self.keepalive = False
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        if self.transport:
            self.transport.close()
        self.connection_state = ConnectionState.DISCONNECTED
        self.state.release_waiters()

    def set_safety_count_max(self, count: int):
        with self._watchdog_lock:
            self.safety_count_max = count

    def _disconnect(self):
        self.connection_state = ConnectionState.DISCONNECTED
        self.transport.close()

    def _run(self):
        while self.keepalive and self.connection_state == ConnectionState.STREAMING:
            try:
                if not self.transport.poll_readable(self.poll_timeout):
                    continue

                header = self.transport.read_exact(LENGTH_FIELD.size)
                if len(header) < LENGTH_FIELD.size:
                    self.logger.error("Realtime channel closed by controller")
                    self._disconnect()
                    break

                length = LENGTH_FIELD.unpack(header)[0]
                if not (LENGTH_FIELD.size <= length <= MAX_FRAME_LENGTH):
                    self.logger.error(f"Corrupt realtime stream (frame length {length}), disconnecting")
                    self._disconnect()
                    break

                body = self.transport.read_exact(length - LENGTH_FIELD.size)
                if len(body) < length - LENGTH_FIELD.size:
                    self.logger.error("Short read on realtime channel, disconnecting")
                    self._disconnect()
                    break

                self.process_frame(header + body)

            except Exception as e:
                self.logger.error(f"Error in realtime channel loop: {e}", exc_info=True)

        if self.connection_state == ConnectionState.STREAMING:
            self.set_speed(ZERO_SPEED)
        self.connection_state = ConnectionState.DISCONNECTED
        self.transport.close()
        self.state.release_waiters()
        self.logger.info("Realtime channel receive loop exited")

    def process_frame(self, frame: bytes) -> bool:
        """
        Decode one frame, publish it and run the watchdog.

        Returns:
            True if the frame was accepted, False if it was dropped
        """
        result = self.decoder.decode(frame)
        if not result.ok:
            self.dropped_frames += 1
            self.logger.warning(result.error)
            return False

        self.state.publish(result.value)
        self._tick_watchdog()
        return True

    def _tick_watchdog(self):
        with self._watchdog_lock:
            expired = self.safety_count == self.safety_count_max
            self.safety_count += 1

        if expired:
            self.logger.debug("No velocity command within the safety window, stopping joints")
            self.set_speed(ZERO_SPEED)

    def enqueue_command(self, command: str) -> bool:
        """
        Send one line of script text to the controller.

        Returns:
            True if written, False if the channel is not connected
        """
        if not command.endswith("\n"):
            command += "\n"

        if not self.connected:
            self.logger.warning(f"Could not send command [ {command.strip()} ] The robot is not connected! "
                                f"Command is discarded")
            return False

        with self._send_lock:
            return self.transport.write_all(command.encode("ascii"))

    def set_speed(self, speeds: Sequence[float], acceleration: Optional[float] = None) -> bool:
        """
        Command joint velocities (rad/s) for the next speedj period.

        A non-zero command re-arms the watchdog.
        """
        if len(speeds) != 6:
            raise ValueError(f"Expected 6 joint speeds, got {len(speeds)}")

        acc = self.speed_acceleration if acceleration is None else acceleration
        sent = self.enqueue_command(script.speedj(speeds, acc, self.speedj_time))

        if any(s != 0.0 for s in speeds):
            # If a joint speed is set, make sure we stop it again after some time if the user doesn't
            with self._watchdog_lock:
                self.safety_count = 0
        return sent
