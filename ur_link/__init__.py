"""
UR Link - Driver for Universal Robots 6-axis arms

This package talks to the arm controller over its TCP interfaces:
- Secondary interface (port 30002) -> firmware version, robot mode, masterboard IO
- Realtime interface (port 30003) -> joint state at controller rate, velocity commands
- Reverse channel (listen socket) -> servo setpoints for trajectory execution

A velocity watchdog stops the joints when the application stops
refreshing its speed commands.
"""

__version__ = "1.0.0"

from .commander import Commander
from .config import DriverConfig, load_configuration
from .config_channel import ConfigChannel
from .driver import RobotDriver, ToolPose
from .exceptions import (
    DriverError,
    ConfigurationError,
    SocketError,
    ProtocolError,
    UnsupportedVersionError,
    ReverseConnectionError
)
from .protocol import ConnectionState, ProtocolVersion
from .realtime_channel import RealtimeChannel
from .triple_buffer import TripleBuffer

__all__ = [
    '__version__',
    'Commander',
    'DriverConfig',
    'load_configuration',
    'ConfigChannel',
    'RobotDriver',
    'ToolPose',
    'DriverError',
    'ConfigurationError',
    'SocketError',
    'ProtocolError',
    'UnsupportedVersionError',
    'ReverseConnectionError',
    'ConnectionState',
    'ProtocolVersion',
    'RealtimeChannel',
    'TripleBuffer',
]
