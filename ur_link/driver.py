"""
Driver facade for the UR arm.

Owns a Commander, turns each realtime update into joint angles, joint
rotations and the tool point, and republishes them through triple
buffers so any thread can read the latest values without blocking the
network threads.
"""

import logging
import signal
import sys
import threading
import time
from typing import List, NamedTuple, Optional, Sequence

import numpy as np

from .commander import Commander
from .config import DriverConfig, load_configuration
from .exceptions import DriverError
from .kinematics import NUM_JOINTS, KinematicModel
from .state import RealtimeStateSnapshot
from .telemetry import RealtimeTelemetry


class ToolPose(NamedTuple):
    position: List[float]
    rotation_vector: List[float]


class AveragingTimer:
    """Exponentially smoothed period between ticks."""

    def __init__(self, smoothing: float = 0.9):
        self.smoothing = smoothing
        self.reset()

    def reset(self):
        self.last_tick: Optional[float] = None
        self.average_period = 0.0
        self.second_tick = False

    def tick(self, now: Optional[float] = None):
        now = time.perf_counter() if now is None else now
        if self.last_tick is None:
            self.second_tick = True
        else:
            diff = now - self.last_tick
            if self.second_tick:
                self.average_period = diff
                self.second_tick = False
            else:
                self.average_period = diff * (1.0 - self.smoothing) + self.average_period * self.smoothing
        self.last_tick = now

    @property
    def rate(self) -> float:
        """Ticks per second, 0 until two ticks were seen."""
        return 0.0 if self.average_period == 0.0 else 1.0 / self.average_period


class RobotDriver:
    """
    Thread-safe front end to one arm.

    Typical use::

        driver = RobotDriver(config)
        driver.setup()
        driver.start()
        angles = driver.get_joint_angles()
        driver.stop()
    """

    def __init__(self, config: DriverConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.robot: Optional[Commander] = None
        self.model = KinematicModel()
        self.telemetry = RealtimeTelemetry(config)
        self.timer = AveragingTimer()

        self.started = False
        self.data_ready = False
        self.should_exit = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self.move = False
        self.current_speed = [0.0] * NUM_JOINTS
        self.acceleration = config.speed_acceleration

    def setup(self, robot: Optional[Commander] = None):
        """
        Connect to the controller.

        Args:
            robot: Already constructed Commander; one is built from the
                configuration when omitted
        """
        self.robot = robot if robot is not None else Commander(self.config)
        self.robot.set_min_payload(self.config.min_payload)
        self.robot.set_max_payload(self.config.max_payload)
        self.robot.set_joint_names(self.config.joint_names)

    def start(self):
        """
        Start the channels and the processing thread.

        Raises:
            DriverError: If setup() was not called or the robot could not be started
        """
        if self.started:
            return
        if self.robot is None:
            raise DriverError("setup() must be called before start()")

        if not self.robot.start():
            raise DriverError("could not start robot")

        self.started = True
        self.should_exit.clear()
        self.telemetry.start()
        self._thread = threading.Thread(target=self._run, name="ur-driver", daemon=True)
        self._thread.start()

    def stop(self):
        if not self.started:
            return
        self.should_exit.set()
        self.disconnect()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        self.telemetry.close()
        self.started = False

    def disconnect(self):
        if self.robot:
            self.robot.halt()

    @property
    def running(self) -> bool:
        return self.started and not self.should_exit.is_set()

    @property
    def update_rate(self) -> float:
        """Smoothed realtime update rate in Hz."""
        return self.timer.rate

    def _run(self):
        realtime = self.robot.realtime_interface
        while not self.should_exit.is_set():
            try:
                if not realtime.state.wait_for_update(self.config.poll_timeout):
                    continue
                if self.should_exit.is_set():
                    break
                self.process_update(realtime.state.get_state())
            except Exception as e:
                self.logger.error(f"Error processing realtime update: {e}", exc_info=True)
        self.logger.info("Driver loop exited")

    def process_update(self, state: RealtimeStateSnapshot):
        """Derive and publish everything the consumers read from one realtime sample."""
        self.data_ready = True

        with self._lock:
            if self.move:
                self.robot.set_speed(self.current_speed, self.acceleration)
                self.move = False

        self.robot.realtime_interface.state.clear_controller_updated()

        self.model.update(state.q_actual, state.tool_vector_actual)
        self.timer.tick()
        self.telemetry.record(state)

    def set_joint_speeds(self, speeds: Sequence[float], acceleration: float = 100.0):
        """Queue joint velocities (rad/s); applied on the next realtime update."""
        if len(speeds) != NUM_JOINTS:
            raise ValueError(f"Expected {NUM_JOINTS} joint speeds, got {len(speeds)}")
        with self._lock:
            self.current_speed = [float(s) for s in speeds]
            self.acceleration = acceleration
            self.move = True

    def execute_trajectory(self, timestamps: Sequence[float], positions: Sequence[Sequence[float]],
                           velocities: Sequence[Sequence[float]]) -> bool:
        if self.robot is None:
            raise DriverError("setup() must be called before execute_trajectory()")
        return self.robot.execute_trajectory(timestamps, positions, velocities)

    def stop_trajectory(self):
        if self.robot:
            self.robot.stop_trajectory()

    def get_joint_positions(self) -> List[float]:
        """Latest raw joint positions, in radians."""
        with self._lock:
            self.model.joints_raw.swap_front()
            return list(self.model.joints_raw.front)

    def get_joint_angles(self) -> List[float]:
        """Latest joint angles with the mounting offsets applied, in radians."""
        with self._lock:
            self.model.joints_processed.swap_front()
            return list(self.model.joints_processed.front)

    def get_toolpoints_raw(self) -> List[float]:
        """Latest tool vector (x, y, z, rx, ry, rz)."""
        with self._lock:
            self.model.tool_point_raw.swap_front()
            return list(self.model.tool_point_raw.front)

    def get_tool_pose(self) -> ToolPose:
        raw = self.get_toolpoints_raw()
        return ToolPose(position=raw[:3], rotation_vector=raw[3:6])

    def get_joint_rotations(self) -> List[np.ndarray]:
        """Latest per-joint rotations as (x, y, z, w) quaternions."""
        with self._lock:
            self.model.joint_rotations.swap_front()
            return [q.copy() for q in self.model.joint_rotations.front]


# Global driver instance and shutdown flag for signal handling
_driver_instance: Optional[RobotDriver] = None
_shutdown = threading.Event()


def signal_handler(signum, frame):
    """Handle termination signals for graceful shutdown."""
    logger = logging.getLogger(__name__)
    logger.info(f"Received signal {signum}, initiating shutdown")
    _shutdown.set()


def setup_logging(log_level: str, log_file: Optional[str] = None,
                  log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'):
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        log_format: Record format string
    """
    level = getattr(logging, log_level.upper())

    # Create formatter
    formatter = logging.Formatter(log_format)

    # Setup root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove any existing handlers
    logger.handlers = []

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def main():
    """Connect to the arm and log its joint angles once per second until interrupted."""
    global _driver_instance
    try:
        # Load configuration
        config = load_configuration()

        # Setup logging
        setup_logging(config.log_level, config.log_file, config.log_format)

        logger = logging.getLogger(__name__)
        logger.info("UR arm driver")
        logger.info(f"Configuration: {config}")

        # Setup signal handlers
        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        _driver_instance = RobotDriver(config)
        _driver_instance.setup()
        _driver_instance.start()

        try:
            while not _shutdown.wait(1.0):
                if not _driver_instance.robot.realtime_interface.connected:
                    logger.error("Realtime channel disconnected, exiting")
                    break
                angles = _driver_instance.get_joint_angles()
                logger.info(
                    f"joints=[{', '.join(f'{a:.4f}' for a in angles)}] "
                    f"rate={_driver_instance.update_rate:.1f}Hz"
                )
        finally:
            _driver_instance.stop()

        return 0

    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received")
        return 0

    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
