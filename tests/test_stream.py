import socket
import threading

import pytest

from minichatd.stream import SocketLineStream


def test_reads_lines_and_trailing_fragment() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a)
    try:
        b.sendall(b"one\r\ntwo\n\xff bad\npartial")
        b.shutdown(socket.SHUT_WR)

        assert stream.readline() == "one"
        assert stream.readline() == "two"
        assert stream.readline() == "� bad"
        assert stream.readline() == "partial"
        assert stream.readline() is None
    finally:
        stream.close()
        b.close()


def test_write_line_appends_newline() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a)
    try:
        stream.write_line("Welcome, alice!")
        b.settimeout(2.0)
        assert b.recv(64) == b"Welcome, alice!\n"
    finally:
        stream.close()
        b.close()


def test_overlong_line_raises() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a, max_line_bytes=16)
    try:
        b.sendall(b"x" * 64)
        with pytest.raises(ValueError):
            stream.readline()
    finally:
        stream.close()
        b.close()


def test_overlong_line_with_newline_raises() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a, max_line_bytes=16)
    try:
        b.sendall(b"x" * 64 + b"\n")
        with pytest.raises(ValueError):
            stream.readline()
    finally:
        stream.close()
        b.close()


def test_line_at_limit_is_accepted() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a, max_line_bytes=16)
    try:
        b.sendall(b"y" * 16 + b"\n")
        assert stream.readline() == "y" * 16
    finally:
        stream.close()
        b.close()


def test_idle_timeout_raises() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a, write_timeout_s=0.05, idle_timeout_s=0.1)
    try:
        with pytest.raises(OSError):
            stream.readline()
    finally:
        stream.close()
        b.close()


def test_read_timeout_without_idle_deadline_keeps_waiting() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a, write_timeout_s=0.05, idle_timeout_s=0.0)
    try:
        # Several socket timeouts elapse before the data arrives.
        timer = threading.Timer(0.2, lambda: b.sendall(b"late\n"))
        timer.start()
        assert stream.readline() == "late"
        timer.join()
    finally:
        stream.close()
        b.close()


def test_close_is_idempotent() -> None:
    a, b = socket.socketpair()
    stream = SocketLineStream(a)
    stream.close()
    stream.close()
    b.close()
