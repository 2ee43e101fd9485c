"""
Frame decoders for the controller's binary channels.

Each controller firmware release changed the layout of some fields, so
both decoders pick their layout once from the negotiated ProtocolVersion.
"""

from .base import BufferReader
from .realtime import FALLBACK_LAYOUT, LAYOUTS, RealtimeDecoder, RealtimeLayout, layout_for
from .secondary import SecondaryDecoder, SecondaryLayout, check_supported

__all__ = [
    'BufferReader',
    'FALLBACK_LAYOUT',
    'LAYOUTS',
    'RealtimeDecoder',
    'RealtimeLayout',
    'layout_for',
    'SecondaryDecoder',
    'SecondaryLayout',
    'check_supported',
]
