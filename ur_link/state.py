"""
Decoded controller state and the lock-guarded holders that publish it.

Snapshots are plain dataclasses produced by the decoders. The holders
(`RobotState` for the config channel, `RealtimeState` for the realtime
channel) own the lock and condition variable consumers wait on.
"""

import threading
from dataclasses import dataclass, field, replace
from typing import List, Optional

from .protocol import ProtocolVersion, RobotMode

NUM_JOINTS = 6


def _zeros(n: int = NUM_JOINTS) -> List[float]:
    return [0.0] * n


@dataclass
class VersionInfo:
    """Contents of the VERSION robot message."""
    timestamp: int = 0
    source: int = 0
    project_name: str = ""
    major_version: int = 0
    minor_version: int = 0
    svn_revision: int = 0
    build_date: str = ""

    @property
    def protocol_version(self) -> ProtocolVersion:
        return ProtocolVersion(self.major_version, self.minor_version, self.svn_revision)


@dataclass
class RobotModeSnapshot:
    timestamp: int = 0
    is_robot_connected: bool = False
    is_real_robot_enabled: bool = False
    is_power_on_robot: bool = False
    is_emergency_stopped: bool = False
    is_protective_stopped: bool = False
    is_program_running: bool = False
    is_program_paused: bool = False
    robot_mode: int = RobotMode.DISCONNECTED
    control_mode: int = 0
    target_speed_fraction: float = 0.0
    speed_scaling: float = 0.0


@dataclass
class MasterboardSnapshot:
    digital_input_bits: int = 0
    digital_output_bits: int = 0
    analog_input_range0: int = 0
    analog_input_range1: int = 0
    analog_input0: float = 0.0
    analog_input1: float = 0.0
    analog_output_domain0: int = 0
    analog_output_domain1: int = 0
    analog_output0: float = 0.0
    analog_output1: float = 0.0
    master_board_temperature: float = 0.0
    robot_voltage_48v: float = 0.0
    robot_current: float = 0.0
    master_io_current: float = 0.0
    safety_mode: int = 0
    master_on_off_state: int = 0
    euromap67_interface_installed: bool = False
    euromap_input_bits: int = 0
    euromap_output_bits: int = 0
    euromap_voltage: float = 0.0
    euromap_current: float = 0.0


@dataclass
class RealtimeStateSnapshot:
    """One realtime frame. Fields absent from the active layout keep their defaults."""
    time: float = 0.0
    q_target: List[float] = field(default_factory=_zeros)
    qd_target: List[float] = field(default_factory=_zeros)
    qdd_target: List[float] = field(default_factory=_zeros)
    i_target: List[float] = field(default_factory=_zeros)
    m_target: List[float] = field(default_factory=_zeros)
    q_actual: List[float] = field(default_factory=_zeros)
    qd_actual: List[float] = field(default_factory=_zeros)
    i_actual: List[float] = field(default_factory=_zeros)
    i_control: List[float] = field(default_factory=_zeros)
    tool_vector_actual: List[float] = field(default_factory=_zeros)
    tcp_speed_actual: List[float] = field(default_factory=_zeros)
    tcp_force: List[float] = field(default_factory=_zeros)
    tool_vector_target: List[float] = field(default_factory=_zeros)
    tcp_speed_target: List[float] = field(default_factory=_zeros)
    digital_input_bits: int = 0
    motor_temperatures: List[float] = field(default_factory=_zeros)
    controller_timer: float = 0.0
    robot_mode: float = 0.0
    joint_modes: List[float] = field(default_factory=_zeros)
    safety_mode: float = 0.0
    tool_accelerometer_values: List[float] = field(default_factory=lambda: _zeros(3))
    speed_scaling: float = 0.0
    linear_momentum_norm: float = 0.0
    v_main: float = 0.0
    v_robot: float = 0.0
    i_robot: float = 0.0
    v_actual: List[float] = field(default_factory=_zeros)
    digital_outputs: int = 0
    program_state: float = 0.0

    @property
    def digital_inputs(self) -> List[bool]:
        """The 64 digital input bits, bit 0 first."""
        return [bool((self.digital_input_bits >> i) & 1) for i in range(64)]


class RobotState:
    """
    Latest config-channel state.

    All access goes through a reentrant lock; `condition` is notified once
    per processed ROBOT_STATE message.
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.condition = threading.Condition(self.lock)
        self.version_data = VersionInfo()
        self.robot_mode = RobotModeSnapshot()
        self.masterboard = MasterboardSnapshot()
        self.new_data_available = False
        self.set_disconnected()

    @property
    def version(self) -> ProtocolVersion:
        with self.lock:
            return self.version_data.protocol_version

    def get_version(self) -> float:
        """Firmware version in the controller's legacy float form."""
        return self.version.as_float()

    def set_version(self, info: VersionInfo):
        with self.lock:
            self.version_data = info

    def update_robot_mode(self, snapshot: RobotModeSnapshot):
        with self.lock:
            self.robot_mode = snapshot

    def update_masterboard(self, snapshot: MasterboardSnapshot):
        with self.lock:
            self.masterboard = snapshot

    def notify_updated(self):
        with self.condition:
            self.new_data_available = True
            self.condition.notify_all()

    def finished_reading(self):
        with self.lock:
            self.new_data_available = False

    def get_robot_mode(self) -> RobotModeSnapshot:
        with self.lock:
            return replace(self.robot_mode)

    def get_masterboard(self) -> MasterboardSnapshot:
        with self.lock:
            return replace(self.masterboard)

    def is_ready(self) -> bool:
        with self.lock:
            return self.robot_mode.robot_mode == RobotMode.RUNNING

    def set_disconnected(self):
        with self.lock:
            self.robot_mode.is_robot_connected = False
            self.robot_mode.is_real_robot_enabled = False
            self.robot_mode.is_power_on_robot = False


class RealtimeState:
    """
    Latest realtime frame plus the update flags the driver waits on.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.condition = threading.Condition(self.lock)
        self._state = RealtimeStateSnapshot()
        self.data_published = False
        self.controller_updated = False
        self.frames = 0

    def publish(self, snapshot: RealtimeStateSnapshot):
        with self.condition:
            self._state = snapshot
            self.frames += 1
            self.data_published = True
            self.controller_updated = True
            self.condition.notify_all()

    def get_state(self) -> RealtimeStateSnapshot:
        with self.lock:
            return self._state

    def wait_for_update(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a frame arrives that the controller has not consumed yet.

        Returns:
            True if an update is pending, False on timeout
        """
        with self.condition:
            return self.condition.wait_for(lambda: self.controller_updated, timeout)

    def clear_controller_updated(self):
        with self.lock:
            self.controller_updated = False

    def clear_data_published(self):
        with self.lock:
            self.data_published = False

    def release_waiters(self):
        """Wake anyone waiting so they can observe shutdown."""
        with self.condition:
            self.data_published = True
            self.controller_updated = True
            self.condition.notify_all()
