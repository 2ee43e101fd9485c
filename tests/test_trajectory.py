"""Tests for cubic interpolation and trajectory playback."""

from __future__ import annotations

import numpy as np
import pytest

from ur_link.trajectory import Trajectory, interp_cubic, interp_cubic_velocity

ZERO = [0.0] * 6


class TestInterpCubic:
    def test_endpoints_and_slopes(self) -> None:
        p0 = np.array([0.0, 1.0, -1.0, 0.5, 2.0, 0.0])
        p1 = np.array([1.0, 0.0, 1.0, 0.5, -2.0, 3.0])
        v0 = np.array([0.1, 0.0, -0.3, 0.0, 1.0, 0.0])
        v1 = np.array([0.0, 0.2, 0.3, 0.0, -1.0, 0.5])
        T = 1.5
        np.testing.assert_allclose(interp_cubic(0.0, T, p0, p1, v0, v1), p0)
        np.testing.assert_allclose(interp_cubic(T, T, p0, p1, v0, v1), p1)
        np.testing.assert_allclose(interp_cubic_velocity(0.0, T, p0, p1, v0, v1), v0, atol=1e-12)
        np.testing.assert_allclose(interp_cubic_velocity(T, T, p0, p1, v0, v1), v1, atol=1e-12)

    def test_midpoint_with_zero_velocities(self) -> None:
        q = interp_cubic(1.0, 2.0, ZERO, [1.0, 0, 0, 0, 0, 0], ZERO, ZERO)
        np.testing.assert_allclose(q, [0.5, 0, 0, 0, 0, 0], atol=1e-12)


class TestTrajectory:
    def test_sample_at_midpoint(self) -> None:
        traj = Trajectory([0.0, 2.0], [ZERO, [1.0, 0, 0, 0, 0, 0]], [ZERO, ZERO])
        np.testing.assert_allclose(traj.cursor().sample(1.0), [0.5, 0, 0, 0, 0, 0], atol=1e-12)

    def test_cursor_moves_forward_through_segments(self) -> None:
        traj = Trajectory(
            [0.0, 1.0, 2.0, 3.0],
            [ZERO, [1.0] * 6, [2.0] * 6, [3.0] * 6],
            [ZERO, [1.0] * 6, [1.0] * 6, ZERO],
        )
        cursor = traj.cursor()
        assert cursor.locate(0.5) == 1
        np.testing.assert_allclose(cursor.sample(1.0), [1.0] * 6)
        assert cursor.locate(2.5) == 3
        # Never moves back
        assert cursor.locate(0.1) == 3

    def test_sample_clamps_past_end(self) -> None:
        traj = Trajectory([0.0, 1.0], [ZERO, [1.0] * 6], [ZERO, ZERO])
        np.testing.assert_allclose(traj.cursor().sample(5.0), [1.0] * 6)

    def test_duration_and_waypoints(self) -> None:
        traj = Trajectory([0.0, 0.5, 1.25], [ZERO] * 3, [ZERO] * 3)
        assert traj.duration == 1.25
        assert len(traj) == 3
        assert traj.waypoints[1].timestamp == 0.5

    @pytest.mark.parametrize("timestamps,positions,velocities", [
        ([0.0], [ZERO], [ZERO]),
        ([0.0, 1.0], [ZERO], [ZERO, ZERO]),
        ([0.0, 1.0], [ZERO, [0.0] * 5], [ZERO, ZERO]),
        ([0.0, 0.0], [ZERO, ZERO], [ZERO, ZERO]),
        ([1.0, 0.5], [ZERO, ZERO], [ZERO, ZERO]),
        ([-2.0, -1.0], [ZERO, ZERO], [ZERO, ZERO]),
        ([-0.5, 1.0], [ZERO, ZERO], [ZERO, ZERO]),
    ])
    def test_invalid_trajectories(self, timestamps, positions, velocities) -> None:
        with pytest.raises(ValueError):
            Trajectory(timestamps, positions, velocities)

    def test_negative_start_is_named_in_error(self) -> None:
        with pytest.raises(ValueError, match="-2.0"):
            Trajectory([-2.0, -1.0], [ZERO, ZERO], [ZERO, ZERO])
