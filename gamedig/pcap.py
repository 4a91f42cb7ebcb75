"""Writes captured traffic to a pcapng stream, inventing the lower-layer headers."""

from __future__ import annotations

import enum
import struct
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Optional

from gamedig.errors import ErrorKind
from gamedig.packet import (
    HEADER_SIZE_ETHERNET,
    HEADER_SIZE_IP4,
    HEADER_SIZE_IP6,
    HEADER_SIZE_UDP,
    PACKET_SIZE,
    CapturePacket,
    Direction,
    Protocol,
)

BUFFER_SIZE = PACKET_SIZE - HEADER_SIZE_IP6 - HEADER_SIZE_ETHERNET
LINKTYPE_ETHERNET = 1
TCP_WINDOW = 43440
_TTL = 64
_IPV4_OPTION_SID = 8
_IPV4_DONT_FRAGMENT = 0x4000
_U32 = 0xFFFFFFFF

_SHB_TYPE = 0x0A0D0D0A
_IDB_TYPE = 0x00000001
_EPB_TYPE = 0x00000006
_BYTE_ORDER_MAGIC = 0x1A2B3C4D
_OPT_END = 0
_OPT_COMMENT = 1


class TcpFlags(enum.IntFlag):
    """TCP header flag bits."""

    FIN = 0x01
    SYN = 0x02
    RST = 0x04
    PSH = 0x08
    ACK = 0x10
    URG = 0x20


class EtherType(enum.IntEnum):
    """Ethernet payload types."""

    IPV4 = 0x0800
    IPV6 = 0x86DD


class IpProtocol(enum.IntEnum):
    """IP next-header protocol numbers."""

    TCP = 6
    UDP = 17


def _pad4(data: bytes) -> bytes:
    return data + b"\x00" * (-len(data) % 4)


def _encode_options(comments: Iterable[str]) -> bytes:
    encoded = b"".join(
        struct.pack("<HH", _OPT_COMMENT, len(value)) + _pad4(value)
        for value in (comment.encode("utf-8") for comment in comments)
    )
    if encoded:
        encoded += struct.pack("<HH", _OPT_END, 0)
    return encoded


def _internet_checksum(header: bytes) -> int:
    total = sum(struct.unpack(f"!{len(header) // 2}H", header))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return ~total & 0xFFFF


class PcapNgWriter:
    """Writes little-endian pcapng blocks to a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._write_block(_SHB_TYPE, struct.pack("<IHHq", _BYTE_ORDER_MAGIC, 1, 0, -1))

    def _write_block(self, block_type: int, body: bytes) -> None:
        total = len(body) + 12
        self._stream.write(
            struct.pack("<II", block_type, total) + body + struct.pack("<I", total)
        )

    def write_interface_description(
        self, linktype: int = LINKTYPE_ETHERNET, snaplen: int = 0xFFFF
    ) -> None:
        """Write an interface description block."""
        self._write_block(_IDB_TYPE, struct.pack("<HHI", linktype, 0, snaplen))

    def write_enhanced_packet(
        self,
        interface_id: int,
        timestamp: float,
        data: bytes,
        original_len: Optional[int] = None,
        comments: Iterable[str] = (),
    ) -> None:
        """Write a packet; ``timestamp`` is in seconds, stored in microseconds."""
        micros = int(round(timestamp * 1_000_000))
        original = len(data) if original_len is None else original_len
        body = (
            struct.pack(
                "<IIIII",
                interface_id,
                (micros >> 32) & _U32,
                micros & _U32,
                len(data),
                original,
            )
            + _pad4(bytes(data))
            + _encode_options(comments)
        )
        self._write_block(_EPB_TYPE, body)


@dataclass
class CaptureState:
    """Sequence numbers and counters of the invented TCP streams."""

    start_time: float = field(default_factory=time.monotonic)
    send_seq: int = 0
    rec_seq: int = 0
    has_sent_handshake: bool = False
    stream_count: int = 0


def _tcp_segment(
    source_port: int,
    dest_port: int,
    sequence: int,
    acknowledgement: int,
    flags: TcpFlags,
    payload: bytes = b"",
) -> bytes:
    header = struct.pack(
        "!HHIIBBHHH",
        source_port,
        dest_port,
        sequence & _U32,
        acknowledgement & _U32,
        5 << 4,
        int(flags),
        TCP_WINDOW,
        0,
        0,
    )
    return header + payload


class Pcap:
    """Turns captured socket traffic into pcapng packets with invented headers."""

    def __init__(self, writer: PcapNgWriter) -> None:
        self._writer = writer
        self.state = CaptureState()

    def write_transport_packet(self, info: CapturePacket, payload: bytes) -> None:
        """Record a payload sent or received, plus a generated ACK for TCP."""
        payload = bytes(payload)
        if len(payload) + 20 > BUFFER_SIZE:
            raise ErrorKind.PacketOverflow.context(
                f"Payload of {len(payload)} bytes does not fit in a captured packet"
            )
        source_port, dest_port = info.ports_by_direction()
        state = self.state

        if info.protocol is Protocol.UDP:
            datagram = struct.pack(
                "!HHHH",
                source_port,
                dest_port,
                (len(payload) + HEADER_SIZE_UDP) & 0xFFFF,
                0,
            )
            self._write_transport_payload(info, IpProtocol.UDP, datagram + payload, ())
            return

        if info.direction is Direction.SEND:
            sequence, acknowledgement = state.send_seq, state.rec_seq
            state.send_seq = (state.send_seq + len(payload)) & _U32
        else:
            sequence, acknowledgement = state.rec_seq, state.send_seq
            state.rec_seq = (state.rec_seq + len(payload)) & _U32
        segment = _tcp_segment(
            source_port, dest_port, sequence, acknowledgement, TcpFlags.PSH | TcpFlags.ACK, payload
        )
        self._write_transport_payload(info, IpProtocol.TCP, segment, ())

        if info.direction is Direction.SEND:
            sequence, acknowledgement = state.rec_seq, state.send_seq
        else:
            sequence, acknowledgement = state.send_seq, state.rec_seq
        reply = info.with_direction(info.direction.reversed())
        segment = _tcp_segment(dest_port, source_port, sequence, acknowledgement, TcpFlags.ACK)
        self._write_transport_payload(reply, IpProtocol.TCP, segment, ("Generated TCP ACK",))

    def write_tcp_handshake(self, info: CapturePacket) -> None:
        """Record an invented SYN, SYN+ACK, ACK exchange."""
        source_port, dest_port = info.local_address[1], info.remote_address[1]
        comments = ("Generated TCP handshake",)
        state = self.state

        state.send_seq = 500
        syn = _tcp_segment(source_port, dest_port, state.send_seq, 0, TcpFlags.SYN)
        self._write_transport_payload(
            info.with_direction(Direction.SEND), IpProtocol.TCP, syn, comments
        )

        state.send_seq = (state.send_seq + 1) & _U32
        state.rec_seq = 1000
        syn_ack = _tcp_segment(
            dest_port, source_port, state.rec_seq, state.send_seq, TcpFlags.SYN | TcpFlags.ACK
        )
        self._write_transport_payload(
            info.with_direction(Direction.RECEIVE), IpProtocol.TCP, syn_ack, comments
        )

        state.rec_seq = (state.rec_seq + 1) & _U32
        ack = _tcp_segment(source_port, dest_port, state.send_seq, state.rec_seq, TcpFlags.ACK)
        self._write_transport_payload(
            info.with_direction(Direction.SEND), IpProtocol.TCP, ack, comments
        )

        state.has_sent_handshake = True

    def send_tcp_fin(self, info: CapturePacket) -> None:
        """Record an invented FIN+ACK in the packet's direction."""
        source_port, dest_port = info.ports_by_direction()
        state = self.state
        if info.direction is Direction.SEND:
            sequence, acknowledgement = state.send_seq, state.rec_seq
        else:
            sequence, acknowledgement = state.rec_seq, state.send_seq
        segment = _tcp_segment(
            source_port, dest_port, sequence, acknowledgement, TcpFlags.FIN | TcpFlags.ACK
        )
        self._write_transport_payload(info, IpProtocol.TCP, segment, ("Generated TCP FIN",))
        if info.direction is Direction.SEND:
            state.send_seq = (state.send_seq + 1) & _U32
        else:
            state.rec_seq = (state.rec_seq + 1) & _U32

    def write(self, info: CapturePacket, data: bytes) -> None:
        """Record data passing through a socket."""
        self.write_transport_packet(info, data)

    def new_connect(self, info: CapturePacket) -> None:
        """Record the start of a connection and begin a new stream."""
        if info.protocol is Protocol.TCP:
            self.write_tcp_handshake(info)
        self.state.stream_count = (self.state.stream_count + 1) & _U32

    def close_connection(self, info: CapturePacket) -> None:
        """Record the end of a connection."""
        if info.protocol is Protocol.TCP:
            self.send_tcp_fin(info)

    def _encode_ip_packet(
        self, info: CapturePacket, protocol: IpProtocol, payload: bytes
    ) -> tuple[bytes, EtherType]:
        local, remote = info.ip_addr()
        if local.version == 4 and remote.version == 4:
            source, destination = info.ip_by_direction(4)
            header_size = HEADER_SIZE_IP4 + 4
            header = struct.pack(
                "!BBHHHBBH4s4s",
                0x40 | (header_size // 4),
                0,
                (len(payload) + header_size) & 0xFFFF,
                0,
                _IPV4_DONT_FRAGMENT,
                _TTL,
                int(protocol),
                0,
                source.packed,
                destination.packed,
            )
            header += bytes([0x80 | _IPV4_OPTION_SID, 4]) + struct.pack(
                "!H", self.state.stream_count & 0xFFFF
            )
            checksum = struct.pack("!H", _internet_checksum(header))
            return header[:10] + checksum + header[12:] + payload, EtherType.IPV4
        if local.version == 6 and remote.version == 6:
            source, destination = info.ip_by_direction(6)
            header = struct.pack(
                "!IHBB16s16s",
                (6 << 28) | (self.state.stream_count & 0xFFFFF),
                len(payload) & 0xFFFF,
                int(protocol),
                _TTL,
                source.packed,
                destination.packed,
            )
            return header + payload, EtherType.IPV6
        raise ValueError("Local and remote addresses use different IP versions")

    def _write_transport_payload(
        self,
        info: CapturePacket,
        protocol: IpProtocol,
        payload: bytes,
        comments: Iterable[str],
    ) -> None:
        network_packet, ethertype = self._encode_ip_packet(info, protocol, payload)
        frame = bytes(12) + struct.pack("!H", int(ethertype)) + network_packet
        self._writer.write_enhanced_packet(
            0,
            time.monotonic() - self.state.start_time,
            frame,
            len(frame),
            tuple(comments),
        )