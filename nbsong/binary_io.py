"""Little-endian primitive reader and the two sinks used by the encoder."""

from __future__ import annotations

import struct
from abc import ABC, abstractmethod
from typing import Final

from nbsong.errors import EncodingInconsistency, TruncatedData, UnencodableSong

# Strings on the wire are one byte per character; latin-1 is exactly the
# byte -> code point identity mapping.
STRING_ENCODING: Final[str] = "latin-1"

_INT8: Final = struct.Struct("<b")
_UINT8: Final = struct.Struct("<B")
_INT16: Final = struct.Struct("<h")
_INT32: Final = struct.Struct("<i")

_RANGES: Final[dict[str, tuple[int, int]]] = {
    "b": (-(2**7), 2**7 - 1),
    "B": (0, 2**8 - 1),
    "h": (-(2**15), 2**15 - 1),
    "i": (-(2**31), 2**31 - 1),
}


class BinaryReader:
    """
    Sequential cursor over an immutable byte buffer.

    Every read is bounds-checked and raises TruncatedData instead of
    returning garbage when the buffer is too short.
    """

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self.offset = 0

    @property
    def remaining(self) -> int:
        """Number of unread bytes."""
        return len(self._data) - self.offset

    def _take(self, packer: struct.Struct) -> int:
        if self.remaining < packer.size:
            raise TruncatedData(self.offset, packer.size, self.remaining)
        (value,) = packer.unpack_from(self._data, self.offset)
        self.offset += packer.size
        return value

    def read_byte(self) -> int:
        return self._take(_INT8)

    def read_unsigned_byte(self) -> int:
        return self._take(_UINT8)

    def read_short(self) -> int:
        return self._take(_INT16)

    def read_int(self) -> int:
        return self._take(_INT32)

    def read_string(self) -> str:
        """Read an int32 length prefix followed by that many single-byte characters."""
        start = self.offset
        length = self.read_int()
        if length < 0:
            self.offset = start
            raise TruncatedData(start, length, self.remaining, f"negative string length {length}")
        if self.remaining < length:
            raise TruncatedData(self.offset, length, self.remaining)
        raw = bytes(self._data[self.offset : self.offset + length])
        self.offset += length
        return raw.decode(STRING_ENCODING)


class ByteSink(ABC):
    """
    Target of the encoder's write plan.

    Values are range-checked here, so an unrepresentable song fails during
    the measure pass before any output buffer exists.
    """

    def _check(self, fmt: str, value: int, what: str) -> int:
        low, high = _RANGES[fmt]
        if not isinstance(value, int) or not low <= value <= high:
            raise UnencodableSong(f"{what}={value!r} does not fit in [{low}, {high}]")
        return value

    def write_byte(self, value: int, what: str = "byte") -> None:
        self._put(_INT8, self._check("b", value, what))

    def write_unsigned_byte(self, value: int, what: str = "unsigned byte") -> None:
        self._put(_UINT8, self._check("B", value, what))

    def write_short(self, value: int, what: str = "short") -> None:
        self._put(_INT16, self._check("h", value, what))

    def write_int(self, value: int, what: str = "int") -> None:
        self._put(_INT32, self._check("i", value, what))

    def write_string(self, value: str, what: str = "string") -> None:
        try:
            raw = value.encode(STRING_ENCODING)
        except UnicodeEncodeError as exc:
            raise UnencodableSong(
                f"{what} contains {value[exc.start]!r}; only U+0000-U+00FF can be stored"
            ) from exc
        self.write_int(len(raw), what=f"{what} length")
        self._put_bytes(raw)

    @abstractmethod
    def _put(self, packer: struct.Struct, value: int) -> None:
        """Emit one fixed-width primitive."""

    @abstractmethod
    def _put_bytes(self, raw: bytes) -> None:
        """Emit raw string payload bytes."""


class CountingSink(ByteSink):
    """Measure pass: only accumulates the byte count."""

    def __init__(self) -> None:
        self.size = 0

    def _put(self, packer: struct.Struct, value: int) -> None:
        self.size += packer.size

    def _put_bytes(self, raw: bytes) -> None:
        self.size += len(raw)


class BufferSink(ByteSink):
    """Emit pass: writes into a buffer preallocated to the measured size."""

    def __init__(self, size: int) -> None:
        self._buffer = bytearray(size)
        self.offset = 0

    def _reserve(self, count: int) -> int:
        start = self.offset
        if start + count > len(self._buffer):
            raise EncodingInconsistency(
                f"emit overran measured size {len(self._buffer)} "
                f"(write of {count} byte(s) at offset {start})"
            )
        self.offset += count
        return start

    def _put(self, packer: struct.Struct, value: int) -> None:
        packer.pack_into(self._buffer, self._reserve(packer.size), value)

    def _put_bytes(self, raw: bytes) -> None:
        start = self._reserve(len(raw))
        self._buffer[start : start + len(raw)] = raw

    def getvalue(self) -> bytes:
        """Return the finished buffer; it must be exactly full."""
        if self.offset != len(self._buffer):
            raise EncodingInconsistency(
                f"emit wrote {self.offset} byte(s), measure pass predicted {len(self._buffer)}"
            )
        return bytes(self._buffer)
