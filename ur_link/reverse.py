"""
Setpoint frames for the reverse channel.

Each frame is seven big-endian int32 values: six joint angles in
fixed point (radians * MULT_JOINTSTATE) followed by a keepalive flag.
A keepalive of 0 tells the remote program to stop servoing and exit.
"""

import struct
from typing import List, Sequence, Tuple

MULT_JOINTSTATE = 1000000

SETPOINT_FRAME = struct.Struct(">7i")


def encode_setpoint(positions: Sequence[float], keepalive: int = 1) -> bytes:
    """
    Args:
        positions: Six joint angles in radians
        keepalive: 1 to keep the remote loop running, 0 to end it

    Returns:
        28-byte frame
    """
    if len(positions) != 6:
        raise ValueError(f"Expected 6 joint positions, got {len(positions)}")
    # int() truncates toward zero, like the controller's integer conversion
    return SETPOINT_FRAME.pack(*(int(p * MULT_JOINTSTATE) for p in positions), int(keepalive))


def decode_setpoint(frame: bytes) -> Tuple[List[float], int]:
    """Inverse of encode_setpoint, as the remote program interprets a frame."""
    values = SETPOINT_FRAME.unpack(frame)
    return [v / MULT_JOINTSTATE for v in values[:6]], values[6]
