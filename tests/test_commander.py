"""Tests for program upload, the reverse channel and trajectory execution."""

from __future__ import annotations

import threading
import time

import pytest

from conftest import FakeNetwork, wire_controller
from ur_link.commander import Commander
from ur_link.config import DriverConfig
from ur_link.exceptions import ReverseConnectionError, SocketError, UnsupportedVersionError
from ur_link.protocol import ProtocolVersion
from ur_link.reverse import SETPOINT_FRAME, decode_setpoint
from ur_link.trajectory import Trajectory

ZERO = [0.0] * 6


@pytest.fixture()
def wired(network: FakeNetwork, config: DriverConfig):
    return wire_controller(network, config)


@pytest.fixture()
def commander(network: FakeNetwork, config: DriverConfig, wired):
    cmd = Commander(config, connector=network.connect, listener=network.listen)
    assert cmd.start()
    yield cmd
    cmd.halt()


def setpoint_frames(transport):
    data = b"".join(transport.written)
    size = SETPOINT_FRAME.size
    return [decode_setpoint(data[i:i + size]) for i in range(0, len(data), size)]


class TestConstruction:
    def test_listen_socket_opened_before_upload(self, network, config, wired) -> None:
        cmd = Commander(config, connector=network.connect, listener=network.listen)
        assert cmd.server is wired["server"]
        assert wired["secondary"].written == []
        cmd.halt()
        assert wired["server"].closed

    def test_listen_failure(self, network, config, wired) -> None:
        network.listeners[config.reverse_port] = None
        with pytest.raises(SocketError):
            Commander(config, connector=network.connect, listener=network.listen)
        assert wired["secondary"].closed
        assert wired["realtime"].closed

    @pytest.mark.parametrize("major,minor", [(2, 5), (3, 5), (5, 4)])
    def test_unlisted_firmware_is_accepted(self, network, config, major, minor) -> None:
        wire_controller(network, config, major=major, minor=minor)
        cmd = Commander(config, connector=network.connect, listener=network.listen)
        assert cmd.firmware_version == ProtocolVersion(major, minor)
        assert not cmd.realtime_interface.decoder.layout.exact
        cmd.halt()

    def test_realtime_layout_missing_closes_config_channel(self, network, config, wired, monkeypatch) -> None:
        monkeypatch.setattr("ur_link.realtime_channel.layout_for", lambda version: None)
        with pytest.raises(UnsupportedVersionError):
            Commander(config, connector=network.connect, listener=network.listen)
        assert wired["secondary"].closed

    def test_reverse_ip_from_secondary_connection(self, commander) -> None:
        assert commander.reverse_ip == "10.0.0.5"
        assert 'socket_open("10.0.0.5", 50007)' in commander.build_program()

    def test_reverse_ip_override(self, network, config, wired) -> None:
        config.reverse_ip = "192.0.2.99"
        cmd = Commander(config, connector=network.connect, listener=network.listen)
        assert cmd.reverse_ip == "192.0.2.99"
        cmd.halt()

    def test_servoj_time_is_clamped(self, commander) -> None:
        commander.set_servoj_time(0.001)
        assert commander.servoj_time == 0.008


class TestReverseChannel:
    def test_upload_then_accept(self, commander, wired) -> None:
        assert commander.upload_program()
        assert wired["secondary"].text.startswith("def driverProg():\n")
        assert commander.reverse_connected

    def test_accept_timeout_is_fatal(self, commander, wired) -> None:
        wired["server"].pending_connections.clear()
        with pytest.raises(ReverseConnectionError):
            commander.upload_program()

    def test_servoj_without_connection(self, commander) -> None:
        assert not commander.servoj(ZERO)

    def test_close_servo_sends_keepalive_zero(self, commander, wired) -> None:
        commander.upload_program()
        commander.servoj([0.1] * 6)
        commander.close_servo([0.2] * 6)
        frames = setpoint_frames(wired["reverse"])
        assert [keepalive for _, keepalive in frames] == [1, 0]
        assert frames[-1][0] == pytest.approx([0.2] * 6)
        assert wired["reverse"].closed
        assert not wired["server"].closed
        assert not commander.reverse_connected


class TestExecuteTrajectory:
    def test_runs_to_completion(self, commander, wired) -> None:
        target = [0.3, -0.2, 0.1, 0.0, 0.0, 0.05]
        assert commander.execute_trajectory([0.0, 0.1], [ZERO, target], [ZERO, ZERO])

        frames = setpoint_frames(wired["reverse"])
        assert len(frames) > 2
        assert all(keepalive == 1 for _, keepalive in frames[:-1])
        positions, keepalive = frames[-1]
        assert keepalive == 0
        assert positions == pytest.approx(frames[-2][0])
        assert not commander.executing_traj

    def test_setpoints_stay_between_waypoints(self, commander, wired) -> None:
        commander.execute_trajectory([0.0, 0.1], [ZERO, [1.0] * 6], [ZERO, ZERO])
        for positions, _ in setpoint_frames(wired["reverse"]):
            assert all(-1e-6 <= q <= 1.0 + 1e-6 for q in positions)

    def test_preempted_by_stop(self, commander, wired) -> None:
        result = {}

        def run() -> None:
            result["ok"] = commander.execute_trajectory([0.0, 5.0], [ZERO, [1.0] * 6], [ZERO, ZERO])

        thread = threading.Thread(target=run)
        thread.start()
        time.sleep(0.1)
        commander.stop_trajectory()
        thread.join(timeout=2.0)

        assert result["ok"] is False
        frames = setpoint_frames(wired["reverse"])
        # Holds at the last reported actual position
        assert frames[-1] == (ZERO, 0)
        assert "stopj(10)\n" in wired["realtime"].text

    def test_invalid_trajectory_uploads_nothing(self, commander, wired) -> None:
        with pytest.raises(ValueError):
            commander.execute_trajectory([0.0], [ZERO], [ZERO])
        assert wired["secondary"].written == []

    def test_negative_timestamps_upload_nothing(self, commander, wired) -> None:
        with pytest.raises(ValueError):
            commander.execute_trajectory([-2.0, -1.0], [ZERO, ZERO], [ZERO, ZERO])
        assert wired["secondary"].written == []
        assert not commander.reverse_connected
        assert not wired["reverse"].closed

    def test_no_setpoint_sampled_still_closes_servo(self, commander, wired, monkeypatch) -> None:
        monkeypatch.setattr(Trajectory, "duration", property(lambda self: -1.0))
        assert commander.execute_trajectory([0.0, 0.1], [ZERO, [1.0] * 6], [ZERO, ZERO])

        # Nothing streamed; the hold frame uses the actual joint positions
        assert setpoint_frames(wired["reverse"]) == [(ZERO, 0)]
        assert wired["reverse"].closed
        assert not commander.reverse_connected

    def test_halt_waits_for_hold_frame(self, commander, wired) -> None:
        result = {}

        def run() -> None:
            result["ok"] = commander.execute_trajectory([0.0, 5.0], [ZERO, [1.0] * 6], [ZERO, ZERO])

        thread = threading.Thread(target=run)
        thread.start()
        time.sleep(0.1)
        commander.halt()
        thread.join(timeout=2.0)

        # The trajectory thread sent its keepalive 0 frame before halt closed anything
        assert not thread.is_alive()
        assert result["ok"] is False
        frames = setpoint_frames(wired["reverse"])
        assert frames[-1] == (ZERO, 0)
        assert sum(1 for _, keepalive in frames if keepalive == 0) == 1
        assert wired["reverse"].closed


class TestOutputs:
    def test_digital_out(self, commander, wired) -> None:
        assert not commander.legacy_io
        commander.set_digital_out(9, True)
        assert wired["secondary"].text == "sec setOut():\n\tset_tool_digital_out(1, True)\nend\n"

    def test_payload_window(self, commander, wired) -> None:
        assert commander.set_payload(0.5)
        assert not commander.set_payload(1.5)
        assert not commander.set_payload(0.0)
        assert wired["secondary"].text.count("set_payload") == 1

    def test_min_payload_not_negative(self, commander) -> None:
        commander.set_min_payload(-2.0)
        assert commander.minimum_payload == 0.0

    def test_joint_names(self, commander) -> None:
        commander.set_joint_names(["a", "b", "c", "d", "e", "f"])
        names = commander.get_joint_names()
        names.append("g")
        assert commander.get_joint_names() == ["a", "b", "c", "d", "e", "f"]

    def test_set_speed_goes_over_realtime(self, commander, wired) -> None:
        assert commander.set_speed([0.1, 0, 0, 0, 0, 0])
        assert wired["realtime"].text.startswith("speedj([0.10000")
