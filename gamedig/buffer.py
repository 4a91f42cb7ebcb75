"""Cursor-based reading of numbers and strings from received packet data."""

from __future__ import annotations

import enum
import struct
from typing import ClassVar, Protocol

from gamedig.errors import ErrorKind

_FORMATS: dict[str, str] = {
    "u8": "B",
    "i8": "b",
    "u16": "H",
    "i16": "h",
    "u32": "I",
    "i32": "i",
    "u64": "Q",
    "i64": "q",
    "f32": "f",
    "f64": "d",
}


class ByteOrder(enum.Enum):
    """Byte order used when reading multi-byte values."""

    LITTLE = "<"
    BIG = ">"

    def switched(self) -> "ByteOrder":
        """Return the opposite byte order."""
        return ByteOrder.BIG if self is ByteOrder.LITTLE else ByteOrder.LITTLE


class StringDecoder(Protocol):
    """Anything that decodes a string from the front of a byte slice."""

    DELIMITER: bytes

    def decode(self, data: bytes, delimiter: bytes | None = None) -> tuple[str, int]:
        ...


class Utf8Decoder:
    """UTF-8 strings terminated by a single delimiter byte (NUL by default)."""

    DELIMITER: ClassVar[bytes] = b"\x00"

    def decode(self, data: bytes, delimiter: bytes | None = None) -> tuple[str, int]:
        """Decode a string and return it with the number of bytes consumed."""
        delimiter = self.DELIMITER if delimiter is None else delimiter
        position = data.find(delimiter[:1])
        if position < 0:
            position = len(data)
        try:
            text = data[:position].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ErrorKind.PacketBad.context(exc) from exc
        return text, position + 1


class Utf8LengthPrefixedDecoder:
    """UTF-8 strings preceded by a one-byte maximum length."""

    DELIMITER: ClassVar[bytes] = b"\x00"

    def decode(self, data: bytes, delimiter: bytes | None = None) -> tuple[str, int]:
        """Decode a string and return it with the number of bytes consumed."""
        delimiter = self.DELIMITER if delimiter is None else delimiter
        if not data:
            raise ErrorKind.PacketBad.context("Length of string not found")
        length = data[0]
        position = data[1 : 1 + length].find(delimiter[:1])
        if position < 0:
            position = length
        if position + 1 > len(data):
            raise ErrorKind.PacketUnderflow.context(
                f"String length {length} exceeds remaining bytes {len(data) - 1}"
            )
        try:
            text = data[1 : position + 1].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ErrorKind.PacketBad.context(exc) from exc
        return text, position + 1


class Utf16Decoder:
    """UTF-16 strings terminated by a two-byte delimiter (two NULs by default)."""

    DELIMITER: ClassVar[bytes] = b"\x00\x00"

    def __init__(self, byteorder: ByteOrder) -> None:
        self.byteorder = byteorder

    def decode(self, data: bytes, delimiter: bytes | None = None) -> tuple[str, int]:
        """Decode a string and return it with the number of bytes consumed."""
        delimiter = self.DELIMITER if delimiter is None else delimiter
        position = next(
            (
                start
                for start in range(0, len(data) - 1, 2)
                if data[start : start + 2] == delimiter[:2]
            ),
            len(data),
        )
        if position % 2:
            raise ErrorKind.PacketBad.context("UTF-16 data has an odd number of bytes")
        codec = "utf-16-le" if self.byteorder is ByteOrder.LITTLE else "utf-16-be"
        try:
            text = data[:position].decode(codec)
        except UnicodeDecodeError as exc:
            raise ErrorKind.PacketBad.context(exc) from exc
        return text, position + 2


class Buffer:
    """Reads values from a byte string while tracking a cursor."""

    def __init__(self, data: bytes, byteorder: ByteOrder = ByteOrder.LITTLE) -> None:
        self._data = bytes(data)
        self._cursor = 0
        self.byteorder = byteorder

    def current_position(self) -> int:
        """Position of the cursor."""
        return self._cursor

    def remaining_length(self) -> int:
        """Number of bytes left after the cursor."""
        return len(self._data) - self._cursor

    def data_length(self) -> int:
        """Total length of the data."""
        return len(self._data)

    def remaining_bytes(self) -> bytes:
        """The bytes not read yet."""
        return self._data[self._cursor :]

    def move_cursor(self, offset: int) -> None:
        """Move the cursor by ``offset``; fail if it would leave the data."""
        new_cursor = self._cursor + offset
        if new_cursor < 0 or new_cursor > len(self._data):
            raise ErrorKind.PacketBad.context(
                f"Cursor move to {new_cursor} is out of bounds (length {len(self._data)})"
            )
        self._cursor = new_cursor

    def read(self, kind: str) -> int | float:
        """Read a value such as ``"u8"``, ``"i32"`` or ``"f64"`` and advance."""
        try:
            code = _FORMATS[kind]
        except KeyError:
            raise ErrorKind.InvalidInput.context(f"Unknown value type {kind!r}") from None
        size = struct.calcsize(code)
        remaining = self.remaining_length()
        if size > remaining:
            raise ErrorKind.PacketUnderflow.context(
                f"Size requested {size} was larger than remaining bytes {remaining}"
            )
        chunk = self._data[self._cursor : self._cursor + size]
        self._cursor += size
        (value,) = struct.unpack(self.byteorder.value + code, chunk)
        return value

    def read_string(self, decoder: StringDecoder, until: bytes | None = None) -> str:
        """Read a string with ``decoder``, up to ``until`` or its default delimiter."""
        if self._cursor > len(self._data):
            raise ErrorKind.PacketUnderflow.context(
                f"Cursor position {self._cursor} is out of bounds when reading string. "
                f"Buffer length: {len(self._data)}"
            )
        delimiter = decoder.DELIMITER if until is None else until
        text, consumed = decoder.decode(self._data[self._cursor :], delimiter)
        self._cursor += consumed
        return text

    def switch_endian_chunk(self, size: int) -> "Buffer":
        """Take the next ``size`` bytes as a new buffer of the opposite byte order."""
        start = self._cursor
        self.move_cursor(size)
        return Buffer(self._data[start : start + size], self.byteorder.switched())