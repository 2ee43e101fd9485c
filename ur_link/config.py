"""
Configuration management for the UR arm driver.

Configuration is loaded from config.yaml file.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

import yaml

from .exceptions import ConfigurationError

DEFAULT_JOINT_NAMES = [
    "shoulder_pan",
    "shoulder_lift",
    "elbow",
    "wrist_1",
    "wrist_2",
    "wrist_3",
]

# Smallest servoj period the controller accepts (one 125 Hz tick)
MIN_SERVOJ_TIME = 0.008


@dataclass
class DriverConfig:
    """
    Configuration for the arm driver.
    """

    # Network settings - Robot controller
    robot_host: str = "192.168.1.10"
    probe_port: int = 30001
    secondary_port: int = 30002
    realtime_port: int = 30003
    connect_timeout: float = 5.0

    # Network settings - Reverse setpoint channel
    reverse_port: int = 50007
    reverse_ip: Optional[str] = None
    accept_timeout: float = 5.0

    # Control
    servoj_time: float = 0.016
    safety_count_max: int = 12
    speed_acceleration: float = 100.0
    speedj_time: float = 0.02
    min_payload: float = 0.0
    max_payload: float = 1.0
    joint_names: List[str] = field(default_factory=lambda: list(DEFAULT_JOINT_NAMES))

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None

    # Telemetry - InfluxDB
    telemetry_enabled: bool = False
    influxdb_host: str = "localhost:8086"
    influxdb_database: str = "robot_telemetry"
    influxdb_token: str = ""
    telemetry_flush_interval: float = 2.0

    # Performance
    poll_timeout: float = 0.5
    socket_buffer_size: int = 2048
    handshake_settle: float = 0.5
    reassemble_fragments: bool = False

    def validate(self):
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        # Validate ports
        for name in ("probe_port", "secondary_port", "realtime_port", "reverse_port"):
            port = getattr(self, name)
            if not (1 <= port <= 65535):
                raise ConfigurationError(f"Invalid {name}: {port}")

        # Validate timeouts
        for name in ("connect_timeout", "accept_timeout", "poll_timeout", "telemetry_flush_interval"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"Invalid {name}: {getattr(self, name)}")
        if self.handshake_settle < 0:
            raise ConfigurationError(f"Invalid handshake_settle: {self.handshake_settle}")

        if self.servoj_time <= 0:
            raise ConfigurationError(f"Invalid servoj_time: {self.servoj_time}")
        if self.speedj_time <= 0:
            raise ConfigurationError(f"Invalid speedj_time: {self.speedj_time}")

        if self.safety_count_max < 1:
            raise ConfigurationError(f"Invalid safety_count_max: {self.safety_count_max}")

        if self.min_payload > self.max_payload:
            raise ConfigurationError(
                f"min_payload ({self.min_payload}) is greater than max_payload ({self.max_payload})"
            )

        if len(self.joint_names) != 6:
            raise ConfigurationError(f"Expected 6 joint names, got {len(self.joint_names)}")

        if self.socket_buffer_size < 64:
            raise ConfigurationError(f"Invalid socket_buffer_size: {self.socket_buffer_size}")

        # Validate log level
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.log_level.upper() not in valid_levels:
            raise ConfigurationError(f"Invalid log_level: {self.log_level}. Must be one of {valid_levels}")

    @classmethod
    def from_yaml(cls, path: str) -> 'DriverConfig':
        """
        Load configuration from YAML file.

        Args:
            path: Path to YAML config file

        Returns:
            DriverConfig instance

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f)

            if not data:
                return cls()

            # Extract nested values
            config_dict = {}

            if 'network' in data:
                robot = data['network'].get('robot') or {}
                for key, attr in (('host', 'robot_host'), ('probe_port', 'probe_port'),
                                  ('secondary_port', 'secondary_port'), ('realtime_port', 'realtime_port'),
                                  ('connect_timeout', 'connect_timeout')):
                    if key in robot:
                        config_dict[attr] = robot[key]

                reverse = data['network'].get('reverse') or {}
                for key, attr in (('port', 'reverse_port'), ('ip', 'reverse_ip'),
                                  ('accept_timeout', 'accept_timeout')):
                    if key in reverse:
                        config_dict[attr] = reverse[key]

            if 'control' in data:
                for key in ('servoj_time', 'safety_count_max', 'speed_acceleration', 'speedj_time',
                            'min_payload', 'max_payload', 'joint_names'):
                    if key in data['control']:
                        config_dict[key] = data['control'][key]

            if 'logging' in data:
                config_dict['log_level'] = data['logging'].get('level', cls.log_level)
                config_dict['log_format'] = data['logging'].get('format', cls.log_format)
                config_dict['log_file'] = data['logging'].get('file', cls.log_file)

            if 'telemetry' in data:
                config_dict['telemetry_enabled'] = data['telemetry'].get('enabled', cls.telemetry_enabled)
                config_dict['influxdb_host'] = data['telemetry'].get('influxdb_host', cls.influxdb_host)
                config_dict['influxdb_database'] = data['telemetry'].get('influxdb_database', cls.influxdb_database)
                config_dict['influxdb_token'] = data['telemetry'].get('influxdb_token', cls.influxdb_token)
                config_dict['telemetry_flush_interval'] = data['telemetry'].get(
                    'flush_interval', cls.telemetry_flush_interval
                )

            if 'performance' in data:
                config_dict['poll_timeout'] = data['performance'].get('poll_timeout', cls.poll_timeout)
                config_dict['socket_buffer_size'] = data['performance'].get('socket_buffer_size', cls.socket_buffer_size)
                config_dict['handshake_settle'] = data['performance'].get('handshake_settle', cls.handshake_settle)
                config_dict['reassemble_fragments'] = data['performance'].get(
                    'reassemble_fragments', cls.reassemble_fragments
                )

            return cls(**config_dict)

        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML config: {e}")
        except Exception as e:
            raise ConfigurationError(f"Failed to load config from {path}: {e}")

    def __str__(self) -> str:
        """String representation for logging."""
        return (
            f"DriverConfig("
            f"robot={self.robot_host} (ports {self.probe_port}/{self.secondary_port}/{self.realtime_port}), "
            f"reverse_port={self.reverse_port}, "
            f"servoj_time={self.servoj_time}, "
            f"safety_count_max={self.safety_count_max}, "
            f"log_level={self.log_level})"
        )


def load_configuration(config_path: str = "ur_link/config.yaml") -> DriverConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to config.yaml file (default: ur_link/config.yaml)

    Returns:
        Validated DriverConfig

    Raises:
        ConfigurationError: If configuration file is missing or invalid
    """
    # Try default path first if not absolute
    if not os.path.isabs(config_path):
        # Try relative to current directory
        if not os.path.exists(config_path):
            # Try relative to package directory
            package_dir = os.path.dirname(os.path.abspath(__file__))
            config_path = os.path.join(package_dir, "config.yaml")

    config = DriverConfig.from_yaml(config_path)
    config.validate()

    return config
