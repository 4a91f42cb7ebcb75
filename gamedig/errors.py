"""Error kinds and the error type raised throughout the package."""

from __future__ import annotations

import enum
import os
import traceback
from typing import Any

_BACKTRACE_ENV = "GAMEDIG_BACKTRACE"
_BACKTRACE_DISABLED = "<disabled>"


def _capture_backtrace() -> str:
    """Return the current call stack, or a marker when capture is switched off."""
    if os.environ.get(_BACKTRACE_ENV, "") in ("", "0"):
        return _BACKTRACE_DISABLED
    return "".join(traceback.format_stack()[:-2]).rstrip("\n")


def _debug_repr(value: Any) -> str:
    """Render a value for the error's debug text, quoting strings."""
    if isinstance(value, str):
        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
            .replace("\t", "\\t")
        )
        return f'"{escaped}"'
    return repr(value)


class ErrorKind(enum.Enum):
    """Every kind of failure the library reports."""

    PacketOverflow = "PacketOverflow"
    """The received packet was bigger than the buffer size."""
    PacketUnderflow = "PacketUnderflow"
    """The received packet was shorter than the expected one."""
    PacketBad = "PacketBad"
    """The received packet is badly formatted."""
    PacketSend = "PacketSend"
    """Couldn't send the packet."""
    PacketReceive = "PacketReceive"
    """Couldn't receive data when it was expected."""
    Decompress = "Decompress"
    """Couldn't decompress data."""
    SocketConnect = "SocketConnect"
    """Couldn't create a socket connection."""
    SocketBind = "SocketBind"
    """Couldn't bind a socket."""
    InvalidInput = "InvalidInput"
    """Invalid input to the library."""
    BadGame = "BadGame"
    """The server claims to be a different game than the one queried."""
    AutoQuery = "AutoQuery"
    """None of the attempted protocols succeeded."""
    ProtocolFormat = "ProtocolFormat"
    """A protocol-defined expected format was not met."""
    UnknownEnumCast = "UnknownEnumCast"
    """Couldn't cast a value to an enum."""
    JsonParse = "JsonParse"
    """Couldn't parse a JSON string."""
    TypeParse = "TypeParse"
    """Couldn't parse a value."""
    HostLookup = "HostLookup"
    """Couldn't find the host specified."""

    def context(self, source: Any) -> "GDError":
        """Build an error of this kind carrying ``source`` as its cause."""
        return GDError(self, source)


class GDError(Exception):
    """The error raised by the library: a kind, an optional source and a backtrace."""

    def __init__(self, kind: ErrorKind, source: Any = None) -> None:
        self.kind = kind
        self.source = source
        self.backtrace = _capture_backtrace()
        super().__init__(kind.name if source is None else f"{kind.name}: {source}")
        if isinstance(source, BaseException):
            self.__cause__ = source

    def __eq__(self, other: object) -> bool:
        if isinstance(other, GDError):
            return self.kind == other.kind
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.kind)

    def __repr__(self) -> str:
        lines = [f"GDError{{ kind={self.kind.name}"]
        if self.source is not None:
            lines.append(f"  source={_debug_repr(self.source)}")
        if self.backtrace is not None:
            lines.append("  backtrace=" + self.backtrace.replace("\n", "\n  "))
        lines.append("}")
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return self.__repr__()