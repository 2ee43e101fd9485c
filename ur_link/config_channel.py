"""
Config (secondary) channel.

Construction performs the version handshake on the probe port and then
connects to the secondary port. `start()` runs the receive loop on its
own thread; decoded robot mode and masterboard data land in `state`.
This channel also carries uploaded script programs.
"""

import logging
import threading
import time
from typing import Callable, Optional

from .decoders.secondary import SecondaryDecoder, check_supported
from .exceptions import ProtocolError, SocketError
from .protocol import FRAME_HEADER, PROBE_PORT, SECONDARY_PORT, ConnectionState, ProtocolVersion
from .state import RobotState
from .transport import SocketTransport

# Largest message accepted during the handshake
MAX_HANDSHAKE_FRAME = 4096

# Partial data kept between reads when reassembling
MAX_PENDING = 65536

Connector = Callable[[str, int, float], Optional[SocketTransport]]


class ConfigChannel:
    """
    Lower-rate channel carrying mode/state/program messages.
    """

    def __init__(self, host: str, probe_port: int = PROBE_PORT, secondary_port: int = SECONDARY_PORT,
                 connect_timeout: float = 5.0, poll_timeout: float = 0.5, buffer_size: int = 2048,
                 handshake_settle: float = 0.5, reassemble_fragments: bool = False,
                 connector: Connector = SocketTransport.connect):
        """
        Args:
            host: Controller address
            probe_port: Port that announces the firmware version on connect
            secondary_port: Steady-state config port
            connect_timeout: Connect timeout per socket, in seconds
            poll_timeout: Receive loop wake-up interval, in seconds
            buffer_size: Maximum bytes read per receive
            handshake_settle: Pause after the version read before closing the probe socket
            reassemble_fragments: Keep partial messages across reads instead of dropping them
            connector: Factory returning a connected transport or None

        Raises:
            SocketError: If the probe port cannot be reached
            ProtocolError: If no version message arrives
            UnsupportedVersionError: If the firmware is too old
        """
        self.logger = logging.getLogger(__name__)
        self.host = host
        self.secondary_port = secondary_port
        self.connect_timeout = connect_timeout
        self.poll_timeout = poll_timeout
        self.buffer_size = buffer_size
        self.reassemble_fragments = reassemble_fragments
        self.connector = connector

        self.state = RobotState()
        self.decoder = SecondaryDecoder(self.state)
        self.connection_state = ConnectionState.DISCONNECTED

        self.keepalive = False
        self._thread: Optional[threading.Thread] = None
        self._send_lock = threading.Lock()

        self.version = self._handshake(probe_port, handshake_settle)
        self.logger.info(f"Firmware version detected: {self.version.as_float():.7f}")

        self.logger.info("Switching to secondary interface for masterboard data: Connecting...")
        self.connection_state = ConnectionState.CONNECTING
        self.transport = connector(host, secondary_port, connect_timeout)
        if self.transport is None:
            self.logger.error(f"Error opening secondary socket {host}:{secondary_port}")
            self.connection_state = ConnectionState.DISCONNECTED

    @classmethod
    def from_config(cls, config, connector: Connector = SocketTransport.connect) -> 'ConfigChannel':
        return cls(
            config.robot_host,
            probe_port=config.probe_port,
            secondary_port=config.secondary_port,
            connect_timeout=config.connect_timeout,
            poll_timeout=config.poll_timeout,
            buffer_size=config.socket_buffer_size,
            handshake_settle=config.handshake_settle,
            reassemble_fragments=config.reassemble_fragments,
            connector=connector,
        )

    def _handshake(self, probe_port: int, settle: float) -> ProtocolVersion:
        probe = self.connector(self.host, probe_port, self.connect_timeout)
        if probe is None:
            raise SocketError(f"Could not connect to {self.host}:{probe_port} to acquire firmware version")

        try:
            self.logger.info("Acquire firmware version - Got connection")
            if not probe.poll_readable(self.connect_timeout):
                raise ProtocolError("No version message received from controller")

            header = probe.read_exact(FRAME_HEADER.size)
            if len(header) < FRAME_HEADER.size:
                raise ProtocolError("Controller closed the probe connection during handshake")

            length = FRAME_HEADER.unpack(header)[0]
            if not (FRAME_HEADER.size <= length <= MAX_HANDSHAKE_FRAME):
                raise ProtocolError(f"Invalid handshake message length: {length}")

            body = probe.read_exact(length - FRAME_HEADER.size)
            if len(body) < length - FRAME_HEADER.size:
                raise ProtocolError("Truncated handshake message")

            self.decoder.unpack(header + body)
            if not self.decoder.handshake_complete:
                raise ProtocolError("First probe message was not a version message")

            version = self.decoder.version
            check_supported(version)

            # Wait for some traffic so the controller socket doesn't die in version 3.1
            if settle > 0:
                time.sleep(settle)
            return version
        finally:
            probe.close()

    @property
    def connected(self) -> bool:
        return self.connection_state == ConnectionState.STREAMING

    def local_address(self) -> Optional[str]:
        """Our IP address as seen on the secondary connection."""
        if self.transport is None:
            return None
        return self.transport.local_address()

    def start(self) -> bool:
        """
        Start the receive loop.

        Returns:
            True if the loop was started, False if the channel never connected
        """
        if self.transport is None:
            self.logger.error("Cannot start config channel: not connected")
            return False

        self.keepalive = True
        self.connection_state = ConnectionState.STREAMING
        self._thread = threading.Thread(target=self._run, name="ur-config-channel", daemon=True)
        self._thread.start()
        return True

    def halt(self):
        """Stop the receive loop and close the connection."""
        self.keepalive = False
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        if self.transport:
            self.transport.close()
        self.connection_state = ConnectionState.DISCONNECTED

    def _run(self):
        pending = b""

        while self.keepalive and self.connection_state == ConnectionState.STREAMING:
            try:
                if not self.transport.poll_readable(self.poll_timeout):
                    continue

                chunk = self.transport.read_some(self.buffer_size)
                if not chunk:
                    self.logger.error("No Data - disconnect...")
                    self.connection_state = ConnectionState.DISCONNECTED
                    self.state.set_disconnected()
                    break

                data = pending + chunk if pending else chunk
                consumed = self.decoder.unpack(data)

                if consumed < len(data):
                    if self.reassemble_fragments and len(data) - consumed <= MAX_PENDING:
                        pending = data[consumed:]
                    else:
                        self.logger.debug(f"Dropping {len(data) - consumed} bytes of a partial message")
                        pending = b""
                else:
                    pending = b""

            except Exception as e:
                self.logger.error(f"Error in config channel loop: {e}", exc_info=True)

        self.transport.close()
        self.logger.info("Config channel receive loop exited")

    def send_script(self, program: str) -> bool:
        """
        Upload script text verbatim.

        Returns:
            True if the text was written, False if the channel is down
        """
        if not program.endswith("\n"):
            program += "\n"

        if not self.connected:
            self.logger.warning(f"Could not send program, the robot is not connected. Discarded: {program!r}")
            return False

        with self._send_lock:
            return self.transport.write_all(program.encode("ascii"))
