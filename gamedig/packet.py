"""Metadata describing a captured packet: its direction, protocol and endpoints."""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass, replace
from typing import Tuple, TypeVar, Union

PACKET_SIZE = 5012
"""Size of a standard network packet."""
HEADER_SIZE_ETHERNET = 14
"""Size of an Ethernet header."""
HEADER_SIZE_IP4 = 20
"""Size of an IPv4 header without options."""
HEADER_SIZE_IP6 = 40
"""Size of an IPv6 header."""
HEADER_SIZE_UDP = 4
"""Size added to the payload when filling the UDP length field."""

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
SocketAddress = Tuple[Union[str, IPAddress], int]

_T = TypeVar("_T")


class Direction(enum.Enum):
    """Whether a packet was sent or received by us."""

    SEND = "send"
    RECEIVE = "receive"

    def order(self, source: _T, remote: _T) -> tuple[_T, _T]:
        """Order a local and a remote value as (source, destination)."""
        if self is Direction.SEND:
            return source, remote
        return remote, source

    def reversed(self) -> "Direction":
        """The opposite direction."""
        return Direction.RECEIVE if self is Direction.SEND else Direction.SEND


class Protocol(enum.Enum):
    """Transport protocol of a packet."""

    TCP = "tcp"
    UDP = "udp"


@dataclass(frozen=True)
class CapturePacket:
    """A captured packet's direction, protocol and socket addresses."""

    direction: Direction
    protocol: Protocol
    remote_address: SocketAddress
    local_address: SocketAddress

    def ports_by_direction(self) -> tuple[int, int]:
        """Return (source port, destination port)."""
        return self.direction.order(self.local_address[1], self.remote_address[1])

    def ip_addr(self) -> tuple[IPAddress, IPAddress]:
        """Return (local IP, remote IP)."""
        return (
            ipaddress.ip_address(self.local_address[0]),
            ipaddress.ip_address(self.remote_address[0]),
        )

    def ip_by_direction(self, version: int) -> tuple[IPAddress, IPAddress]:
        """Return (source IP, destination IP), requiring both to be of ``version``."""
        local, remote = self.ip_addr()
        if local.version != version:
            raise ValueError("Incorrect IP type for local address")
        if remote.version != version:
            raise ValueError("Incorrect IP type for remote address")
        return self.direction.order(local, remote)

    def with_direction(self, direction: Direction) -> "CapturePacket":
        """A copy of this packet going in ``direction``."""
        return replace(self, direction=direction)