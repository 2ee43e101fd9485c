"""
Static UR5 joint table and the per-update joint processing.

Raw joint positions are corrected by a fixed mounting offset on the
shoulder-lift and wrist-1 joints before per-joint rotations are derived.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np

from .triple_buffer import TripleBuffer

NUM_JOINTS = 6

# Zero pose of the physical arm differs from the model by a quarter turn on these joints
JOINT_ANGLE_OFFSETS: Dict[int, float] = {1: math.pi / 2, 3: math.pi / 2}

JOINT_POSITIONS = [
    (0.0, 0.0, 0.0),
    (0.0, -0.072238, 0.083204),
    (0.0, -0.077537, 0.51141),
    (0.0, -0.070608, 0.903192),
    (0.0, -0.117242, 0.950973),
    (0.0, -0.164751, 0.996802),
]

JOINT_AXES = [
    (0.0, 0.0, 1.0),
    (0.0, -1.0, 0.0),
    (0.0, -1.0, 0.0),
    (0.0, -1.0, 0.0),
    (0.0, 0.0, 1.0),
    (0.0, 1.0, 0.0),
]

# Rest pose of the model, in radians
INITIAL_JOINT_ANGLES = [0.0, -math.pi / 2, 0.0, -math.pi / 2, 0.0, 0.0]


def quat_from_axis_angle(axis: Sequence[float], angle: float) -> np.ndarray:
    """Unit quaternion (x, y, z, w) rotating by angle radians about axis."""
    axis = np.asarray(axis, dtype=float)
    norm = np.linalg.norm(axis)
    if norm == 0.0:
        return np.array([0.0, 0.0, 0.0, 1.0])
    half = angle / 2.0
    xyz = axis / norm * math.sin(half)
    return np.array([xyz[0], xyz[1], xyz[2], math.cos(half)])


@dataclass
class JointPose:
    position: np.ndarray
    axis: np.ndarray
    rotation: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, 0.0, 1.0]))
    offset: np.ndarray = field(default_factory=lambda: np.zeros(3))


class KinematicModel:
    """
    Joint table plus the triple buffers the driver publishes through.

    The driver thread writes the back slots; consumers read the fronts.
    """

    def __init__(self):
        self.joints: List[JointPose] = []
        for i in range(NUM_JOINTS):
            axis = np.array(JOINT_AXES[i])
            self.joints.append(JointPose(
                position=np.array(JOINT_POSITIONS[i]),
                axis=axis,
                rotation=quat_from_axis_angle(axis, INITIAL_JOINT_ANGLES[i]),
            ))
        for i in range(1, NUM_JOINTS):
            self.joints[i].offset = self.joints[i].position - self.joints[i - 1].position

        zeros = [0.0] * NUM_JOINTS

        # Raw joint positions via the arm
        self.joints_raw: TripleBuffer[List[float]] = TripleBuffer(zeros)
        # Joint positions after the mounting offset, in radians about each joint axis
        self.joints_processed: TripleBuffer[List[float]] = TripleBuffer(zeros)
        # Tool (x, y, z, rx, ry, rz) with a rotation vector orientation
        self.tool_point_raw: TripleBuffer[List[float]] = TripleBuffer(zeros)
        self.joint_rotations: TripleBuffer[List[np.ndarray]] = TripleBuffer(
            [joint.rotation.copy() for joint in self.joints]
        )

        self.publish()

    def process(self, raw: Sequence[float]) -> List[float]:
        """
        Apply the mounting offsets and update each joint's rotation.

        Returns:
            Offset-corrected joint angles
        """
        processed = [float(q) for q in raw]
        for i, joint in enumerate(self.joints):
            processed[i] += JOINT_ANGLE_OFFSETS.get(i, 0.0)
            joint.rotation = quat_from_axis_angle(joint.axis, processed[i])
        return processed

    def update(self, raw_joints: Sequence[float], tool_vector: Sequence[float]):
        """Fill all back slots from one realtime sample and publish them."""
        self.joints_raw.back = [float(q) for q in raw_joints]
        self.joints_processed.back = self.process(raw_joints)
        self.tool_point_raw.back = [float(v) for v in tool_vector]
        self.joint_rotations.back = [joint.rotation.copy() for joint in self.joints]
        self.publish()

    def publish(self):
        self.joints_raw.swap_back()
        self.joints_processed.swap_back()
        self.tool_point_raw.swap_back()
        self.joint_rotations.swap_back()
