"""
Time-parameterized joint trajectories.

Between two waypoints each joint follows the cubic Hermite polynomial
that matches both waypoint positions and velocities. Playback walks the
segments with a cursor that only ever moves forward, since the
trajectory is sampled in real time with increasing elapsed time.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

NUM_JOINTS = 6


@dataclass(frozen=True)
class TrajectoryWaypoint:
    timestamp: float
    positions: Tuple[float, ...]
    velocities: Tuple[float, ...]


def _coefficients(T: float, p0: np.ndarray, p1: np.ndarray, v0: np.ndarray, v1: np.ndarray):
    a = p0
    b = v0
    c = (-3 * p0 + 3 * p1 - 2 * T * v0 - T * v1) / T ** 2
    d = (2 * p0 - 2 * p1 + T * v0 + T * v1) / T ** 3
    return a, b, c, d


def interp_cubic(t: float, T: float, p0_pos, p1_pos, p0_vel, p1_vel) -> np.ndarray:
    """
    Joint positions at time t into a segment of duration T.

    Args:
        t: Time since the start of the segment, in seconds
        T: Segment duration, in seconds
        p0_pos, p1_pos: Positions at the segment start and end
        p0_vel, p1_vel: Velocities at the segment start and end

    Returns:
        Array of interpolated positions, one per joint
    """
    a, b, c, d = _coefficients(T, np.asarray(p0_pos, dtype=float), np.asarray(p1_pos, dtype=float),
                               np.asarray(p0_vel, dtype=float), np.asarray(p1_vel, dtype=float))
    return a + b * t + c * t ** 2 + d * t ** 3


def interp_cubic_velocity(t: float, T: float, p0_pos, p1_pos, p0_vel, p1_vel) -> np.ndarray:
    """Time derivative of interp_cubic."""
    _, b, c, d = _coefficients(T, np.asarray(p0_pos, dtype=float), np.asarray(p1_pos, dtype=float),
                               np.asarray(p0_vel, dtype=float), np.asarray(p1_vel, dtype=float))
    return b + 2 * c * t + 3 * d * t ** 2


class Trajectory:
    """
    Validated waypoint arrays.

    Raises:
        ValueError: On fewer than two waypoints, mismatched array lengths,
            joint vectors that are not of length 6, a negative first
            timestamp, or timestamps that do not strictly increase
    """

    def __init__(self, timestamps: Sequence[float], positions: Sequence[Sequence[float]],
                 velocities: Sequence[Sequence[float]]):
        self.timestamps = np.asarray(timestamps, dtype=float)
        self.positions = np.asarray(positions, dtype=float)
        self.velocities = np.asarray(velocities, dtype=float)

        n = len(self.timestamps)
        if n < 2:
            raise ValueError("A trajectory needs at least two waypoints")
        if self.positions.shape != (n, NUM_JOINTS) or self.velocities.shape != (n, NUM_JOINTS):
            raise ValueError(
                f"Expected {n} positions and velocities of {NUM_JOINTS} joints, "
                f"got {self.positions.shape} and {self.velocities.shape}"
            )
        if self.timestamps[0] < 0:
            raise ValueError(f"Trajectory timestamps are seconds from the start, got {self.timestamps[0]}")
        if np.any(np.diff(self.timestamps) <= 0):
            raise ValueError("Trajectory timestamps must be strictly increasing")

    def __len__(self) -> int:
        return len(self.timestamps)

    @property
    def duration(self) -> float:
        return float(self.timestamps[-1])

    @property
    def waypoints(self) -> List[TrajectoryWaypoint]:
        return [
            TrajectoryWaypoint(float(t), tuple(p), tuple(v))
            for t, p, v in zip(self.timestamps, self.positions, self.velocities)
        ]

    def cursor(self) -> 'SegmentCursor':
        return SegmentCursor(self)


class SegmentCursor:
    """
    Forward-only playback position within a Trajectory.
    """

    def __init__(self, trajectory: Trajectory):
        self.trajectory = trajectory
        self.index = 1

    def locate(self, elapsed: float) -> int:
        """
        Advance to the segment containing elapsed.

        Returns:
            Index j of the segment's end waypoint; the segment is (j - 1, j)
        """
        timestamps = self.trajectory.timestamps
        last = len(timestamps) - 1
        while self.index < last and timestamps[self.index] <= elapsed:
            self.index += 1
        return self.index

    def sample(self, elapsed: float) -> np.ndarray:
        """Positions at elapsed seconds since the trajectory started."""
        j = self.locate(elapsed)
        tr = self.trajectory
        t_start = tr.timestamps[j - 1]
        T = tr.timestamps[j] - t_start
        t = min(max(elapsed - t_start, 0.0), T)
        return interp_cubic(t, T, tr.positions[j - 1], tr.positions[j],
                            tr.velocities[j - 1], tr.velocities[j])
