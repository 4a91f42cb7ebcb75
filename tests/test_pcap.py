import io
import ipaddress
import struct

import pytest

from gamedig.errors import ErrorKind, GDError
from gamedig.packet import HEADER_SIZE_UDP, CapturePacket, Direction, Protocol
from gamedig.pcap import (
    BUFFER_SIZE,
    LINKTYPE_ETHERNET,
    EtherType,
    IpProtocol,
    Pcap,
    PcapNgWriter,
    TcpFlags,
)

LOCAL = ("127.0.0.1", 8080)
REMOTE = ("192.168.1.1", 80)


def _blocks(raw):
    blocks = []
    offset = 0
    while offset < len(raw):
        block_type, length = struct.unpack_from("<II", raw, offset)
        (trailer,) = struct.unpack_from("<I", raw, offset + length - 4)
        assert trailer == length
        blocks.append((block_type, raw[offset + 8 : offset + length - 4]))
        offset += length
    return blocks


def _packets(raw):
    packets = []
    for block_type, body in _blocks(raw):
        if block_type != 6:
            continue
        iid, high, low, caplen, origlen = struct.unpack_from("<IIIII", body)
        data = body[20 : 20 + caplen]
        offset = 20 + (caplen + 3) // 4 * 4
        comments = []
        while offset < len(body):
            code, length = struct.unpack_from("<HH", body, offset)
            if code == 0:
                break
            comments.append(body[offset + 4 : offset + 4 + length].decode())
            offset += 4 + (length + 3) // 4 * 4
        packets.append(
            {
                "interface": iid,
                "timestamp": (high << 32) | low,
                "caplen": caplen,
                "origlen": origlen,
                "data": data,
                "comments": comments,
            }
        )
    return packets


def _split_frame(frame):
    (ethertype,) = struct.unpack("!H", frame[12:14])
    ip = frame[14:]
    if ethertype == EtherType.IPV4:
        ihl = (ip[0] & 0x0F) * 4
        return ethertype, ip[:ihl], ip[ihl:]
    return ethertype, ip[:40], ip[40:]


def _tcp(segment):
    src, dst, seq, ack, _offset, flags, window = struct.unpack_from("!HHIIBBH", segment)
    return {"src": src, "dst": dst, "seq": seq, "ack": ack, "flags": flags,
            "window": window, "payload": segment[20:]}


def _fold(header):
    total = sum(struct.unpack(f"!{len(header) // 2}H", header))
    while total >> 16:
        total = (total & 0xFFFF) + (total >> 16)
    return total


@pytest.fixture
def capture():
    stream = io.BytesIO()
    writer = PcapNgWriter(stream)
    writer.write_interface_description(LINKTYPE_ETHERNET, 0xFFFF)
    return stream, Pcap(writer)


def _info(direction, protocol, local=LOCAL, remote=REMOTE):
    return CapturePacket(direction, protocol, remote_address=remote, local_address=local)


def test_section_header_and_interface(capture):
    stream, _ = capture
    blocks = _blocks(stream.getvalue())
    shb_type, shb_body = blocks[0]
    assert stream.getvalue()[:4] == struct.pack("<I", 0x0A0D0D0A)
    assert struct.unpack_from("<I", shb_body)[0] == 0x1A2B3C4D
    idb_type, idb_body = blocks[1]
    linktype, _reserved, snaplen = struct.unpack("<HHI", idb_body)
    assert linktype == LINKTYPE_ETHERNET
    assert snaplen == 0xFFFF


def test_udp_send_packet(capture):
    stream, pcap = capture
    payload = b"hello"
    pcap.write(_info(Direction.SEND, Protocol.UDP), payload)
    (packet,) = _packets(stream.getvalue())
    assert packet["caplen"] == packet["origlen"] == len(packet["data"])
    assert packet["comments"] == []
    ethertype, ip, udp = _split_frame(packet["data"])
    assert ethertype == EtherType.IPV4
    assert ip[9] == IpProtocol.UDP
    assert ip[12:16] == ipaddress.ip_address("127.0.0.1").packed
    assert ip[16:20] == ipaddress.ip_address("192.168.1.1").packed
    src, dst, length, _ = struct.unpack_from("!HHHH", udp)
    assert (src, dst) == (8080, 80)
    assert length == len(payload) + HEADER_SIZE_UDP
    assert udp[8:] == payload


def test_udp_receive_swaps_endpoints(capture):
    stream, pcap = capture
    pcap.write(_info(Direction.RECEIVE, Protocol.UDP), b"x")
    (packet,) = _packets(stream.getvalue())
    _, ip, udp = _split_frame(packet["data"])
    assert ip[12:16] == ipaddress.ip_address("192.168.1.1").packed
    assert ip[16:20] == ipaddress.ip_address("127.0.0.1").packed
    assert struct.unpack_from("!HH", udp) == (80, 8080)


def test_ipv4_header_checksum_length_and_option(capture):
    stream, pcap = capture
    info = _info(Direction.SEND, Protocol.UDP)
    pcap.new_connect(info)
    pcap.write(info, b"data")
    (packet,) = _packets(stream.getvalue())
    _, ip, transport = _split_frame(packet["data"])
    assert _fold(ip) == 0xFFFF
    (total_length,) = struct.unpack_from("!H", ip, 2)
    assert total_length == len(ip) + len(transport)
    assert ip[22:24] == struct.pack("!H", pcap.state.stream_count)


def test_tcp_handshake(capture):
    stream, pcap = capture
    pcap.new_connect(_info(Direction.SEND, Protocol.TCP))
    packets = _packets(stream.getvalue())
    assert len(packets) == 3
    assert all(p["comments"] == ["Generated TCP handshake"] for p in packets)
    syn, syn_ack, ack = (_tcp(_split_frame(p["data"])[2]) for p in packets)
    assert syn["flags"] == TcpFlags.SYN
    assert syn_ack["flags"] == TcpFlags.SYN | TcpFlags.ACK
    assert ack["flags"] == TcpFlags.ACK
    assert syn["seq"] == 500
    assert syn_ack["seq"] == 1000
    assert syn_ack["ack"] == syn["seq"] + 1
    assert ack["seq"] == syn_ack["ack"]
    assert ack["ack"] == syn_ack["seq"] + 1
    assert (syn["src"], syn["dst"]) == (8080, 80)
    assert (syn_ack["src"], syn_ack["dst"]) == (80, 8080)
    assert syn["window"] == 43440
    assert pcap.state.has_sent_handshake is True
    assert pcap.state.stream_count == 1


def test_tcp_send_data_and_generated_ack(capture):
    stream, pcap = capture
    info = _info(Direction.SEND, Protocol.TCP)
    pcap.new_connect(info)
    before_send, before_rec = pcap.state.send_seq, pcap.state.rec_seq
    payload = b"query"
    pcap.write(info, payload)
    data_packet, ack_packet = _packets(stream.getvalue())[3:]
    data = _tcp(_split_frame(data_packet["data"])[2])
    assert data["flags"] == TcpFlags.PSH | TcpFlags.ACK
    assert data["payload"] == payload
    assert (data["seq"], data["ack"]) == (before_send, before_rec)
    assert pcap.state.send_seq == before_send + len(payload)
    assert pcap.state.rec_seq == before_rec
    ack = _tcp(_split_frame(ack_packet["data"])[2])
    assert ack_packet["comments"] == ["Generated TCP ACK"]
    assert ack["flags"] == TcpFlags.ACK
    assert (ack["src"], ack["dst"]) == (80, 8080)
    assert (ack["seq"], ack["ack"]) == (pcap.state.rec_seq, pcap.state.send_seq)
    assert ack["payload"] == b""


def test_tcp_receive_advances_receive_sequence(capture):
    _, pcap = capture
    pcap.new_connect(_info(Direction.SEND, Protocol.TCP))
    before_send, before_rec = pcap.state.send_seq, pcap.state.rec_seq
    pcap.write(_info(Direction.RECEIVE, Protocol.TCP), b"reply!")
    assert pcap.state.rec_seq == before_rec + len(b"reply!")
    assert pcap.state.send_seq == before_send


def test_tcp_close_sends_fin(capture):
    stream, pcap = capture
    info = _info(Direction.SEND, Protocol.TCP)
    pcap.new_connect(info)
    before = pcap.state.send_seq
    pcap.close_connection(info)
    fin_packet = _packets(stream.getvalue())[-1]
    fin = _tcp(_split_frame(fin_packet["data"])[2])
    assert fin_packet["comments"] == ["Generated TCP FIN"]
    assert fin["flags"] == TcpFlags.FIN | TcpFlags.ACK
    assert fin["seq"] == before
    assert pcap.state.send_seq == before + 1


def test_udp_connect_and_close_write_nothing(capture):
    stream, pcap = capture
    info = _info(Direction.SEND, Protocol.UDP)
    pcap.new_connect(info)
    pcap.close_connection(info)
    assert _packets(stream.getvalue()) == []
    assert pcap.state.stream_count == 1


def test_ipv6_packet(capture):
    stream, pcap = capture
    info = _info(Direction.SEND, Protocol.UDP, local=("::1", 5000), remote=("fe80::2", 27015))
    pcap.new_connect(info)
    pcap.write(info, b"abc")
    (packet,) = _packets(stream.getvalue())
    ethertype, ip, udp = _split_frame(packet["data"])
    assert ethertype == EtherType.IPV6
    (first_word, payload_length, next_header, hop_limit) = struct.unpack_from("!IHBB", ip)
    assert first_word >> 28 == 6
    assert first_word & 0xFFFFF == pcap.state.stream_count
    assert payload_length == len(udp)
    assert next_header == IpProtocol.UDP
    assert ip[8:24] == ipaddress.ip_address("::1").packed
    assert ip[24:40] == ipaddress.ip_address("fe80::2").packed


def test_mixed_ip_versions_rejected(capture):
    _, pcap = capture
    info = _info(Direction.SEND, Protocol.UDP, local=("::1", 5000))
    with pytest.raises(ValueError):
        pcap.write(info, b"x")


def test_sequence_numbers_wrap(capture):
    _, pcap = capture
    start = 2**32 - 1
    pcap.state.send_seq = start
    pcap.write(_info(Direction.SEND, Protocol.TCP), b"ab")
    assert pcap.state.send_seq == (start + 2) % 2**32
    assert pcap.state.send_seq < 2**32


def test_oversized_payload_raises(capture):
    _, pcap = capture
    with pytest.raises(GDError) as info:
        pcap.write(_info(Direction.SEND, Protocol.UDP), bytes(BUFFER_SIZE))
    assert info.value.kind is ErrorKind.PacketOverflow


def test_enhanced_packet_round_trip():
    stream = io.BytesIO()
    writer = PcapNgWriter(stream)
    writer.write_enhanced_packet(0, 2.0, b"\x01\x02\x03", comments=["abc", "hello"])
    (packet,) = _packets(stream.getvalue())
    assert packet["data"] == b"\x01\x02\x03"
    assert packet["origlen"] == 3
    assert packet["comments"] == ["abc", "hello"]
    assert packet["timestamp"] / 1_000_000 == 2.0
    assert len(stream.getvalue()) % 4 == 0