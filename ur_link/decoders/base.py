"""
Big-endian field reader shared by the channel decoders.
"""

import struct
from typing import Optional

_INT8 = struct.Struct(">b")
_UINT8 = struct.Struct(">B")
_INT16 = struct.Struct(">h")
_UINT16 = struct.Struct(">H")
_INT32 = struct.Struct(">i")
_UINT64 = struct.Struct(">Q")
_FLOAT = struct.Struct(">f")
_DOUBLE = struct.Struct(">d")


class BufferReader:
    """
    Sequential reader over a bytes buffer.

    Every read advances the offset. Reading past `end` raises struct.error,
    which callers turn into a failed DecodeResult.
    """

    def __init__(self, buffer: bytes, offset: int = 0, end: Optional[int] = None):
        self.buffer = buffer
        self.offset = offset
        self.end = len(buffer) if end is None else min(end, len(buffer))

    @property
    def remaining(self) -> int:
        return self.end - self.offset

    def _read(self, fmt: struct.Struct):
        if self.offset + fmt.size > self.end:
            raise struct.error(f"need {fmt.size} bytes at offset {self.offset}, have {self.remaining}")
        value = fmt.unpack_from(self.buffer, self.offset)[0]
        self.offset += fmt.size
        return value

    def int8(self) -> int:
        return self._read(_INT8)

    def uint8(self) -> int:
        return self._read(_UINT8)

    def boolean(self) -> bool:
        return self._read(_UINT8) > 0

    def int16(self) -> int:
        return self._read(_INT16)

    def uint16(self) -> int:
        return self._read(_UINT16)

    def int32(self) -> int:
        return self._read(_INT32)

    def uint64(self) -> int:
        return self._read(_UINT64)

    def float32(self) -> float:
        return self._read(_FLOAT)

    def float64(self) -> float:
        return self._read(_DOUBLE)

    def raw(self, n: int) -> bytes:
        if n < 0 or self.offset + n > self.end:
            raise struct.error(f"need {n} bytes at offset {self.offset}, have {self.remaining}")
        data = self.buffer[self.offset:self.offset + n]
        self.offset += n
        return bytes(data)

    def rest(self) -> bytes:
        return self.raw(self.remaining)
