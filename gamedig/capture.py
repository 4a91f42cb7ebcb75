"""Capturing of socket traffic: a global capture writer and a socket wrapper feeding it."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional, Protocol as _TypingProtocol, Union

from gamedig.packet import CapturePacket, Direction, Protocol, SocketAddress
from gamedig.pcap import LINKTYPE_ETHERNET, Pcap, PcapNgWriter

_UNSPECIFIED_ADDRESS: SocketAddress = ("0.0.0.0", 0)

_lock = threading.RLock()
_writer: Optional["Writer"] = None


class Writer(_TypingProtocol):
    """Receives every captured packet: data, new connections and closed connections."""

    def write(self, info: CapturePacket, data: bytes) -> None:
        """Record ``data`` passing through a socket."""
        ...

    def new_connect(self, info: CapturePacket) -> None:
        """Record the opening of a connection."""
        ...

    def close_connection(self, info: CapturePacket) -> None:
        """Record the closing of a connection."""
        ...


class _Socket(_TypingProtocol):
    def send(self, data: bytes) -> None:
        ...

    def receive(self, size: Optional[int] = None) -> bytes:
        ...

    def local_addr(self) -> SocketAddress:
        ...


def set_writer(writer: Writer) -> None:
    """Install the global capture writer; raise RuntimeError if one is already set."""
    global _writer
    with _lock:
        if _writer is not None:
            raise RuntimeError("Capture writer already set")
        _writer = writer


def get_writer() -> Optional[Writer]:
    """The global capture writer, or None when capturing is off."""
    with _lock:
        return _writer


def clear_writer() -> Optional[Writer]:
    """Remove the global capture writer and return it."""
    global _writer
    with _lock:
        previous, _writer = _writer, None
        return previous


def setup_capture(file_path: Union[str, Path, None]) -> Optional[Pcap]:
    """Start writing a pcapng capture next to ``file_path`` (with a ``.pcap`` suffix).

    Does nothing when ``file_path`` is None. The file must not exist yet.
    """
    if file_path is None:
        return None
    target = Path(file_path).with_suffix(".pcap")
    stream = open(target, "xb", buffering=0)
    pcap_writer = PcapNgWriter(stream)
    pcap_writer.write_interface_description(LINKTYPE_ETHERNET, 0xFFFF)
    pcap = Pcap(pcap_writer)
    set_writer(pcap)
    return pcap


def _dispatch(method: str, *args: object) -> None:
    with _lock:
        if _writer is not None:
            getattr(_writer, method)(*args)


class CaptureSocket:
    """Wraps a connected socket and reports its traffic to the capture writer."""

    def __init__(self, inner: _Socket, remote_address: SocketAddress, protocol: Protocol) -> None:
        self._inner = inner
        self.remote_address = remote_address
        self.protocol = protocol
        self._closed = False
        _dispatch("new_connect", self._packet(Direction.SEND, self.local_addr()))

    def _packet(self, direction: Direction, local: SocketAddress) -> CapturePacket:
        return CapturePacket(
            direction=direction,
            protocol=self.protocol,
            remote_address=self.remote_address,
            local_address=local,
        )

    def send(self, data: bytes) -> None:
        """Record and send ``data``."""
        _dispatch("write", self._packet(Direction.SEND, self.local_addr()), bytes(data))
        self._inner.send(data)

    def receive(self, size: Optional[int] = None) -> bytes:
        """Receive data from the inner socket and record it."""
        data = self._inner.receive(size)
        _dispatch("write", self._packet(Direction.RECEIVE, self.local_addr()), bytes(data))
        return data

    def local_addr(self) -> SocketAddress:
        """The local address of the inner socket."""
        return self._inner.local_addr()

    def close(self) -> None:
        """Record the end of the connection and close the inner socket; idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            local = self.local_addr()
        except OSError:
            local = _UNSPECIFIED_ADDRESS
        try:
            _dispatch("close_connection", self._packet(Direction.SEND, local))
        finally:
            inner_close = getattr(self._inner, "close", None)
            if callable(inner_close):
                inner_close()

    def __enter__(self) -> "CaptureSocket":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()