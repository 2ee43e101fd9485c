"""
Decoder for the realtime (port 30003) channel.

Each frame is an int32 byte length followed by a fixed sequence of
big-endian doubles. The sequence depends on the firmware version, so a
`RealtimeLayout` is chosen once from the negotiated version and a single
generic routine walks it for every frame.
"""

import struct
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..protocol import DecodeResult, ProtocolVersion
from ..state import RealtimeStateSnapshot

LENGTH_FIELD = struct.Struct(">i")

# (snapshot attribute or None for reserved slots, number of doubles)
Field = Tuple[Optional[str], int]

_COMMON: List[Field] = [
    ("time", 1),
    ("q_target", 6),
    ("qd_target", 6),
    ("qdd_target", 6),
    ("i_target", 6),
    ("m_target", 6),
    ("q_actual", 6),
    ("qd_actual", 6),
    ("i_actual", 6),
]

_V1_TAIL: List[Field] = [
    ("tcp_force", 6),
    ("tool_vector_actual", 6),
    ("tcp_speed_actual", 6),
    ("digital_input_bits", 1),
    ("motor_temperatures", 6),
    ("controller_timer", 1),
    (None, 1),  # test value
]

_V16 = _COMMON + [(None, 18)] + _V1_TAIL
_V17 = _COMMON + [("tool_accelerometer_values", 3), (None, 15)] + _V1_TAIL + [("robot_mode", 1)]
_V18 = _V17 + [("joint_modes", 6)]

_V30 = _COMMON + [
    ("i_control", 6),
    ("tool_vector_actual", 6),
    ("tcp_speed_actual", 6),
    ("tcp_force", 6),
    ("tool_vector_target", 6),
    ("tcp_speed_target", 6),
    ("digital_input_bits", 1),
    ("motor_temperatures", 6),
    ("controller_timer", 1),
    (None, 1),  # test value
    ("robot_mode", 1),
    ("joint_modes", 6),
    ("safety_mode", 1),
    (None, 6),
    ("tool_accelerometer_values", 3),
    (None, 6),
    ("speed_scaling", 1),
    ("linear_momentum_norm", 1),
    (None, 2),
    ("v_main", 1),
    ("v_robot", 1),
    ("i_robot", 1),
    ("v_actual", 6),
]
_V32 = _V30 + [("digital_outputs", 1), ("program_state", 1)]

_INTEGER_FIELDS = {"digital_input_bits", "digital_outputs"}


@dataclass(frozen=True)
class RealtimeLayout:
    """
    Field sequence of one realtime frame format.

    An exact layout accepts only frames of its own length. A non-exact
    layout accepts longer frames and decodes the known leading fields.
    """
    name: str
    fields: Sequence[Field]
    exact: bool = True

    @property
    def num_doubles(self) -> int:
        return sum(count for _, count in self.fields)

    @property
    def frame_length(self) -> int:
        """Total frame size in bytes, including the length field."""
        return LENGTH_FIELD.size + 8 * self.num_doubles

    @property
    def body(self) -> struct.Struct:
        return struct.Struct(">" + "d" * self.num_doubles)


# Supported (from, until) version ranges, half open on (major, minor)
LAYOUTS: List[Tuple[Tuple[int, int], Tuple[int, int], RealtimeLayout]] = [
    ((1, 6), (1, 7), RealtimeLayout("1.6", _V16)),
    ((1, 7), (1, 8), RealtimeLayout("1.7", _V17)),
    ((1, 8), (1, 9), RealtimeLayout("1.8", _V18)),
    ((3, 0), (3, 2), RealtimeLayout("3.0", _V30)),
    ((3, 2), (3, 3), RealtimeLayout("3.2", _V32)),
]

# Later firmware only appends fields after the 3.0 sequence
FALLBACK_LAYOUT = RealtimeLayout("3.0+", _V30, exact=False)
FALLBACK_FROM = (2, 0)


def layout_for(version: ProtocolVersion) -> Optional[RealtimeLayout]:
    """
    Realtime layout for a firmware version.

    Versions from 2.0 up without a layout of their own get FALLBACK_LAYOUT.
    Returns None below that.
    """
    key = (version.major, version.minor)
    for start, stop, layout in LAYOUTS:
        if start <= key < stop:
            return layout
    if key >= FALLBACK_FROM:
        return FALLBACK_LAYOUT
    return None


class RealtimeDecoder:
    """
    Decodes realtime frames for one fixed layout.
    """

    def __init__(self, layout: RealtimeLayout):
        self.layout = layout
        self.frame_length = layout.frame_length
        self._body = layout.body

    def decode(self, frame: bytes) -> DecodeResult:
        """
        Decode one complete frame (length field included).

        Returns:
            DecodeResult with a RealtimeStateSnapshot, or an error if the
            declared or actual length does not match the layout
        """
        if len(frame) < LENGTH_FIELD.size:
            return DecodeResult.failure(f"short realtime frame: {len(frame)} bytes")

        declared = LENGTH_FIELD.unpack_from(frame, 0)[0]
        if self.layout.exact:
            fits = declared == self.frame_length and len(frame) == self.frame_length
            expected = f"{self.frame_length}"
        else:
            fits = declared == len(frame) and len(frame) >= self.frame_length
            expected = f"at least {self.frame_length}"
        if not fits:
            return DecodeResult.failure(
                f"Wrong length of message on RT interface: {declared} "
                f"(expected {expected} for {self.layout.name})"
            )

        values = self._body.unpack_from(frame, LENGTH_FIELD.size)
        snapshot = RealtimeStateSnapshot()
        index = 0
        for name, count in self.layout.fields:
            if name is not None:
                if count == 1:
                    value = values[index]
                    setattr(snapshot, name, int(value) if name in _INTEGER_FIELDS else value)
                else:
                    setattr(snapshot, name, list(values[index:index + count]))
            index += count

        return DecodeResult.success(snapshot)


def encode_frame(layout: RealtimeLayout, snapshot: RealtimeStateSnapshot) -> bytes:
    """
    Serialize a snapshot in the given layout. Reserved slots are zero.

    The controller is the only producer of these frames; this exists for
    simulators and tests.
    """
    values: List[float] = []
    for name, count in layout.fields:
        if name is None:
            values.extend([0.0] * count)
        elif count == 1:
            values.append(float(getattr(snapshot, name)))
        else:
            values.extend(float(v) for v in getattr(snapshot, name))
    return LENGTH_FIELD.pack(layout.frame_length) + layout.body.pack(*values)
