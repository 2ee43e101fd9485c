"""Shared fakes for the driver tests.

The channels take connector/listener factories, so the tests swap the
real sockets for in-memory transports that replay scripted controller
bytes and record everything written to them.
"""

from __future__ import annotations

import struct
import threading
from typing import Dict, List, Optional

import pytest

from ur_link.config import DriverConfig
from ur_link.protocol import FRAME_HEADER, MessageType, PackageType, RobotMessageType


# ---------------------------------------------------------------------------
# In-memory transport
# ---------------------------------------------------------------------------


class FakeTransport:
    """Stands in for SocketTransport; reads come from a byte queue."""

    def __init__(self, data: bytes = b"", local_ip: str = "10.0.0.5", port: int = 50007) -> None:
        self._data = bytearray(data)
        self._cond = threading.Condition()
        self._eof = False
        self.written: List[bytes] = []
        self.closed = False
        self.local_ip = local_ip
        self._port = port
        self.pending_connections: List["FakeTransport"] = []

    # controller side

    def feed(self, data: bytes) -> None:
        with self._cond:
            self._data.extend(data)
            self._cond.notify_all()

    def hang_up(self) -> None:
        with self._cond:
            self._eof = True
            self._cond.notify_all()

    # SocketTransport API

    @property
    def port(self) -> int:
        return self._port

    def local_address(self) -> str:
        return self.local_ip

    def poll_readable(self, timeout: float) -> bool:
        with self._cond:
            return self._cond.wait_for(
                lambda: self._data or self._eof or self.closed, timeout
            ) and not self.closed

    def read_exact(self, n: int) -> bytes:
        with self._cond:
            chunk = bytes(self._data[:n])
            del self._data[:n]
            return chunk

    def read_some(self, max_bytes: int) -> bytes:
        return self.read_exact(max_bytes)

    def write_all(self, data: bytes) -> bool:
        if self.closed:
            return False
        self.written.append(data)
        return True

    def accept(self, timeout: Optional[float] = None) -> Optional["FakeTransport"]:
        if self.pending_connections:
            return self.pending_connections.pop(0)
        return None

    def close(self) -> None:
        with self._cond:
            self.closed = True
            self._cond.notify_all()

    @property
    def text(self) -> str:
        return b"".join(self.written).decode("ascii")


class FakeNetwork:
    """Connector/listener pair handing out FakeTransports by port."""

    def __init__(self) -> None:
        self.endpoints: Dict[int, Optional[FakeTransport]] = {}
        self.listeners: Dict[int, Optional[FakeTransport]] = {}
        self.connects: List[tuple] = []

    def connect(self, host: str, port: int, timeout: float = 5.0) -> Optional[FakeTransport]:
        self.connects.append((host, port))
        return self.endpoints.get(port)

    def listen(self, port: int) -> Optional[FakeTransport]:
        return self.listeners.get(port)


# ---------------------------------------------------------------------------
# Controller message builders
# ---------------------------------------------------------------------------


def frame(msg_type: int, payload: bytes) -> bytes:
    return FRAME_HEADER.pack(FRAME_HEADER.size + len(payload), msg_type) + payload


def version_message(major: int, minor: int, revision: int = 0,
                    project: bytes = b"URControl", build_date: bytes = b"01-01-2016, 12:00:00") -> bytes:
    body = (
        struct.pack(">QbB", 0, -1, RobotMessageType.VERSION)
        + struct.pack(">b", len(project)) + project
        + struct.pack(">BBi", major, minor, revision)
        + build_date
    )
    return frame(MessageType.ROBOT_MESSAGE, body)


def robot_mode_package(major: int, robot_mode: int = 7, connected: bool = True,
                       speed_scaling: float = 1.0) -> bytes:
    body = struct.pack(">Q7?B", 123456, connected, True, True, False, False, True, False, robot_mode)
    if major >= 3:
        body += struct.pack(">Bd", 0, 1.0)
    body += struct.pack(">d", speed_scaling)
    return frame(PackageType.ROBOT_MODE_DATA, body)


def masterboard_package(major: int, inputs: int = 0b101, outputs: int = 0b10,
                        euromap: bool = False) -> bytes:
    if major >= 3:
        body = struct.pack(">II", inputs, outputs)
    else:
        body = struct.pack(">HH", inputs, outputs)
    body += struct.pack(">bbddbbddffffBBb", 0, 1, 0.5, 1.5, 0, 1, 2.0, 3.0, 35.0, 48.0, 0.5, 0.1, 1, 1,
                        1 if euromap else 0)
    if euromap:
        body += struct.pack(">II", 7, 9)
        body += struct.pack(">ff", 24.0, 0.25) if major >= 3 else struct.pack(">hh", 24, 1)
    return frame(PackageType.MASTERBOARD_DATA, body)


def robot_state_message(*packages: bytes) -> bytes:
    return frame(MessageType.ROBOT_STATE, b"".join(packages))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> DriverConfig:
    return DriverConfig(
        robot_host="192.0.2.10",
        handshake_settle=0.0,
        poll_timeout=0.05,
        accept_timeout=0.1,
        connect_timeout=0.1,
    )


@pytest.fixture()
def network() -> FakeNetwork:
    return FakeNetwork()


def wire_controller(network: FakeNetwork, config: DriverConfig, major: int = 3, minor: int = 1
                    ) -> Dict[str, FakeTransport]:
    """Register probe, secondary, realtime and reverse endpoints for one controller."""
    endpoints = {
        "probe": FakeTransport(version_message(major, minor)),
        "secondary": FakeTransport(),
        "realtime": FakeTransport(),
        "server": FakeTransport(port=config.reverse_port),
        "reverse": FakeTransport(),
    }
    network.endpoints[config.probe_port] = endpoints["probe"]
    network.endpoints[config.secondary_port] = endpoints["secondary"]
    network.endpoints[config.realtime_port] = endpoints["realtime"]
    network.listeners[config.reverse_port] = endpoints["server"]
    endpoints["server"].pending_connections.append(endpoints["reverse"])
    return endpoints
