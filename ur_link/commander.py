"""
Commander: control-program upload and trajectory execution.

Bring-up order matters. The reverse listen socket is opened in the
constructor, before any program is uploaded, because the uploaded
program connects back to it as soon as it starts. Trajectories are then
streamed as one setpoint frame per tick over that reverse connection.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Sequence

from . import script
from .config import MIN_SERVOJ_TIME, DriverConfig
from .config_channel import ConfigChannel
from .exceptions import ReverseConnectionError, SocketError, UnsupportedVersionError
from .protocol import ProtocolVersion
from .realtime_channel import RealtimeChannel
from .reverse import encode_setpoint
from .trajectory import Trajectory
from .transport import SocketTransport

Listener = Callable[[int], Optional[SocketTransport]]


class Commander:
    """
    Owns the config and realtime channels plus the reverse setpoint channel.
    """

    def __init__(self, config: DriverConfig, connector=SocketTransport.connect,
                 listener: Listener = SocketTransport.listen):
        """
        Args:
            config: Driver configuration
            connector: Factory for outbound connections (see SocketTransport.connect)
            listener: Factory for the reverse listen socket (see SocketTransport.listen)

        Raises:
            SocketError: If the controller or the reverse port is unreachable
            UnsupportedVersionError: If the controller firmware is not supported
        """
        self.logger = logging.getLogger(__name__)
        self.config = config

        self.configuration_interface = ConfigChannel.from_config(config, connector)
        self.firmware_version: ProtocolVersion = self.configuration_interface.version
        try:
            self.realtime_interface = RealtimeChannel.from_config(config, self.firmware_version, connector)
        except UnsupportedVersionError:
            self.configuration_interface.halt()
            raise

        self.reverse_port = config.reverse_port
        self.server = listener(config.reverse_port)
        if self.server is None:
            self.configuration_interface.halt()
            self.realtime_interface.halt()
            raise SocketError(f"Error opening socket for reverse communication on port {config.reverse_port}")

        self.reverse: Optional[SocketTransport] = None
        self._reverse_lock = threading.Lock()
        self.executing_traj = False
        self._traj_done = threading.Event()
        self._traj_done.set()

        self.servoj_time = MIN_SERVOJ_TIME
        self.set_servoj_time(config.servoj_time)
        self.minimum_payload = 0.0
        self.maximum_payload = config.max_payload
        self.set_min_payload(config.min_payload)
        self.joint_names: List[str] = list(config.joint_names)

    @property
    def reverse_connected(self) -> bool:
        return self.reverse is not None

    @property
    def reverse_ip(self) -> str:
        """Address the uploaded program connects back to."""
        if self.config.reverse_ip:
            return self.config.reverse_ip
        return self.configuration_interface.local_address() or "127.0.0.1"

    def start(self) -> bool:
        if not self.configuration_interface.start():
            return False
        if not self.realtime_interface.start():
            return False

        self.logger.info(f"Listening on {self.server.port}")
        return True

    def halt(self, timeout: float = 1.0):
        """
        Stop everything. A running trajectory is preempted first and given
        up to timeout seconds to send its final hold frame.
        """
        if self.executing_traj:
            self.stop_trajectory()
        if not self._traj_done.wait(timeout):
            self.logger.warning(f"Trajectory did not finish within {timeout}s of halt")
        self.configuration_interface.halt()
        self.realtime_interface.halt()
        with self._reverse_lock:
            if self.reverse:
                self.reverse.close()
                self.reverse = None
        self.server.close()

    def build_program(self) -> str:
        return script.driver_program(self.reverse_ip, self.server.port, self.servoj_time)

    def upload_program(self) -> bool:
        """
        Upload and start the servo program, then accept its connection.

        Returns:
            False if the program could not be sent

        Raises:
            ReverseConnectionError: If the program never connects back
        """
        program = self.build_program()
        self.logger.debug(f"Uploading driver program:\n{program}")
        if not self.configuration_interface.send_script(program):
            self.logger.error("Failed to upload driver program")
            return False
        return self.open_servo()

    def open_servo(self) -> bool:
        conn = self.server.accept(self.config.accept_timeout)
        if conn is None:
            raise ReverseConnectionError(
                f"Error on accepting reverse communication on port {self.server.port} "
                f"within {self.config.accept_timeout}s"
            )

        with self._reverse_lock:
            if self.reverse:
                self.reverse.close()
            self.reverse = conn
        self.logger.info("Connected reverse communication")
        return True

    def servoj(self, positions: Sequence[float], keepalive: int = 1) -> bool:
        """
        Send one setpoint frame on the reverse channel.

        Returns:
            True if the frame was written
        """
        with self._reverse_lock:
            if self.reverse is None:
                self.logger.debug(f"servoj called without a reverse connection present. Keepalive: {keepalive}")
                return False
            return self.reverse.write_all(encode_setpoint(positions, keepalive))

    def close_servo(self, positions: Optional[Sequence[float]] = None):
        """
        End the remote servo program: one keepalive=0 frame, then close.

        Args:
            positions: Final setpoint; the last actual joint positions are
                used when omitted
        """
        if positions is None or len(positions) != 6:
            positions = self.realtime_interface.state.get_state().q_actual
        self.servoj(positions, 0)
        with self._reverse_lock:
            if self.reverse:
                self.reverse.close()
                self.reverse = None

    def execute_trajectory(self, timestamps: Sequence[float], positions: Sequence[Sequence[float]],
                           velocities: Sequence[Sequence[float]]) -> bool:
        """
        Play a trajectory through the reverse channel in real time.

        Setpoints are sent at four times the servoj rate. Each tick samples
        the cubic segment bracketing the elapsed wall-clock time.

        Returns:
            True if the trajectory ran to completion, False if it could not
            start or was preempted by stop_trajectory()/halt()

        Raises:
            ValueError: If the waypoints are inconsistent
            ReverseConnectionError: If the controller program does not connect back
        """
        trajectory = Trajectory(timestamps, positions, velocities)

        self._traj_done.clear()
        try:
            if not self.upload_program():
                return False
            return self._play(trajectory)
        finally:
            self._traj_done.set()

    def _play(self, trajectory: Trajectory) -> bool:
        self.executing_traj = True
        cursor = trajectory.cursor()
        period = self.servoj_time / 4.0
        setpoint = None

        t0 = time.perf_counter()
        elapsed = 0.0
        while elapsed <= trajectory.duration and self.executing_traj:
            setpoint = cursor.sample(elapsed)
            self.servoj(setpoint)

            # Oversample with 4 * sample_time
            time.sleep(period)
            elapsed = time.perf_counter() - t0

        preempted = not self.executing_traj
        self.executing_traj = False

        if preempted:
            self.logger.info("Trajectory preempted, holding at the current position")
            self.close_servo()
            return False

        # Signal robot to stop driverProg()
        self.close_servo(list(setpoint) if setpoint is not None else None)
        return True

    def stop_trajectory(self):
        self.executing_traj = False
        self.realtime_interface.enqueue_command(script.stopj(10))

    def set_speed(self, speeds: Sequence[float], acceleration: Optional[float] = None) -> bool:
        return self.realtime_interface.set_speed(speeds, acceleration)

    def get_joint_names(self) -> List[str]:
        return list(self.joint_names)

    def set_joint_names(self, names: Sequence[str]):
        self.joint_names = list(names)

    @property
    def legacy_io(self) -> bool:
        return self.firmware_version.major < 2

    def _send_sec(self, program: str) -> bool:
        self.logger.debug(program)
        return self.configuration_interface.send_script(program)

    def set_tool_voltage(self, voltage: int) -> bool:
        return self._send_sec(script.set_tool_voltage(voltage))

    def set_flag(self, n: int, value: bool) -> bool:
        return self._send_sec(script.set_flag(n, value))

    def set_digital_out(self, n: int, value: bool) -> bool:
        return self._send_sec(script.set_digital_out(n, value, legacy=self.legacy_io))

    def set_analog_out(self, n: int, value: float) -> bool:
        return self._send_sec(script.set_analog_out(n, value, legacy=self.legacy_io))

    def set_payload(self, mass: float) -> bool:
        """
        Returns:
            False if mass is outside the (min, max) payload window
        """
        if self.minimum_payload < mass < self.maximum_payload:
            self._send_sec(script.set_payload(mass))
            return True
        self.logger.warning(f"Payload {mass} outside ({self.minimum_payload}, {self.maximum_payload}), ignored")
        return False

    def set_min_payload(self, mass: float):
        self.minimum_payload = mass if mass > 0 else 0.0

    def set_max_payload(self, mass: float):
        self.maximum_payload = mass

    def set_servoj_time(self, t: float):
        self.servoj_time = t if t > MIN_SERVOJ_TIME else MIN_SERVOJ_TIME
