import pytest

from minichatd.reticulum import LinkLineStream


class FakeLink:
    def __init__(self) -> None:
        self.packet_callback = None
        self.closed_callback = None
        self.torn_down = False
        self.link_id = b"\x01\x02"

    def set_packet_callback(self, cb) -> None:
        self.packet_callback = cb

    def set_link_closed_callback(self, cb) -> None:
        self.closed_callback = cb

    def teardown(self) -> None:
        self.torn_down = True


def test_packets_are_reassembled_into_lines() -> None:
    link = FakeLink()
    stream = LinkLineStream(link)

    link.packet_callback(b"hel", None)
    link.packet_callback(b"lo\r\nsecond\nthi", None)
    link.packet_callback("rd é".encode("utf-8")[:-1], None)
    link.packet_callback("é".encode("utf-8")[-1:], None)
    link.closed_callback(link)

    assert stream.readline() == "hello"
    assert stream.readline() == "second"
    assert stream.readline() == "third é"
    assert stream.readline() is None


def test_data_after_close_is_ignored() -> None:
    link = FakeLink()
    stream = LinkLineStream(link)
    link.closed_callback(link)
    link.packet_callback(b"late\n", None)
    assert stream.readline() is None


def test_overlong_line_is_a_fault() -> None:
    link = FakeLink()
    stream = LinkLineStream(link, max_line_bytes=8)
    link.packet_callback(b"0123456789", None)
    with pytest.raises(ValueError):
        stream.readline()


def test_overlong_complete_line_is_a_fault() -> None:
    link = FakeLink()
    stream = LinkLineStream(link, max_line_bytes=16)
    link.packet_callback(b"ok\n" + b"x" * 64 + b"\nlater\n", None)
    assert stream.readline() == "ok"
    with pytest.raises(ValueError):
        stream.readline()


def test_idle_timeout() -> None:
    stream = LinkLineStream(FakeLink(), idle_timeout_s=0.05)
    with pytest.raises(TimeoutError):
        stream.readline()


def test_close_tears_down_link() -> None:
    link = FakeLink()
    LinkLineStream(link).close()
    assert link.torn_down
