import struct

import pytest

from gamedig.capture import (
    CaptureSocket,
    clear_writer,
    get_writer,
    set_writer,
    setup_capture,
)
from gamedig.packet import CapturePacket, Direction, Protocol
from gamedig.pcap import Pcap

LOCAL = ("127.0.0.1", 8080)
REMOTE = ("192.168.1.1", 80)


class RecordingWriter:
    def __init__(self):
        self.events = []

    def write(self, info, data):
        self.events.append(("write", info, data))

    def new_connect(self, info):
        self.events.append(("connect", info))

    def close_connection(self, info):
        self.events.append(("close", info))


class FakeSocket:
    def __init__(self, reply=b"pong", fail_local=False):
        self.sent = []
        self.reply = reply
        self.fail_local = fail_local
        self.closed = 0

    def send(self, data):
        self.sent.append(data)

    def receive(self, size=None):
        return self.reply

    def local_addr(self):
        if self.fail_local:
            raise OSError("not connected")
        return LOCAL

    def close(self):
        self.closed += 1


@pytest.fixture(autouse=True)
def no_global_writer():
    clear_writer()
    yield
    clear_writer()


@pytest.fixture
def recorder():
    writer = RecordingWriter()
    set_writer(writer)
    return writer


def test_set_writer_twice_raises(recorder):
    with pytest.raises(RuntimeError):
        set_writer(RecordingWriter())
    assert get_writer() is recorder


def test_clear_writer_returns_previous(recorder):
    assert clear_writer() is recorder
    assert get_writer() is None


def test_new_socket_reports_connect(recorder):
    CaptureSocket(FakeSocket(), REMOTE, Protocol.TCP)
    assert recorder.events == [
        ("connect", CapturePacket(Direction.SEND, Protocol.TCP, REMOTE, LOCAL))
    ]


def test_send_records_and_forwards(recorder):
    inner = FakeSocket()
    sock = CaptureSocket(inner, REMOTE, Protocol.UDP)
    sock.send(b"ping")
    assert inner.sent == [b"ping"]
    assert recorder.events[-1] == (
        "write",
        CapturePacket(Direction.SEND, Protocol.UDP, REMOTE, LOCAL),
        b"ping",
    )


def test_receive_records_received_data(recorder):
    sock = CaptureSocket(FakeSocket(reply=b"answer"), REMOTE, Protocol.UDP)
    assert sock.receive(16) == b"answer"
    assert recorder.events[-1] == (
        "write",
        CapturePacket(Direction.RECEIVE, Protocol.UDP, REMOTE, LOCAL),
        b"answer",
    )


def test_close_is_recorded_once(recorder):
    inner = FakeSocket()
    with CaptureSocket(inner, REMOTE, Protocol.TCP) as sock:
        sock.send(b"x")
    sock.close()
    closes = [event for event in recorder.events if event[0] == "close"]
    assert closes == [("close", CapturePacket(Direction.SEND, Protocol.TCP, REMOTE, LOCAL))]
    assert inner.closed == 1


def test_close_falls_back_to_unspecified_local_address(recorder):
    inner = FakeSocket()
    sock = CaptureSocket(inner, REMOTE, Protocol.TCP)
    inner.fail_local = True
    sock.close()
    assert recorder.events[-1][1].local_address == ("0.0.0.0", 0)


def test_without_writer_traffic_still_flows():
    inner = FakeSocket(reply=b"data")
    sock = CaptureSocket(inner, REMOTE, Protocol.UDP)
    sock.send(b"abc")
    assert sock.receive() == b"data"
    assert inner.sent == [b"abc"]
    assert get_writer() is None


def test_setup_capture_none_does_nothing():
    assert setup_capture(None) is None
    assert get_writer() is None


def test_setup_capture_writes_pcap_file(tmp_path):
    pcap = setup_capture(tmp_path / "capture.bin")
    target = tmp_path / "capture.pcap"
    assert isinstance(get_writer(), Pcap)
    assert get_writer() is pcap
    header = target.read_bytes()
    assert struct.unpack("<I", header[:4])[0] == 0x0A0D0D0A
    size_before = len(header)

    with CaptureSocket(FakeSocket(), REMOTE, Protocol.TCP) as sock:
        sock.send(b"hello")
        sock.receive()

    assert pcap.state.has_sent_handshake
    assert pcap.state.stream_count == 1
    assert len(target.read_bytes()) > size_before


def test_setup_capture_refuses_existing_file(tmp_path):
    (tmp_path / "capture.pcap").write_bytes(b"")
    with pytest.raises(FileExistsError):
        setup_capture(tmp_path / "capture")
    assert get_writer() is None