"""Newline-delimited UTF-8 line streams."""

from __future__ import annotations

import socket
import threading
import time
from typing import Protocol


class LineStream(Protocol):
    def readline(self) -> str | None:
        """Return the next line without its terminator, or None at end of stream."""
        ...

    def write_line(self, text: str) -> None: ...

    def close(self) -> None: ...


def decode_line(raw: bytes, encoding: str = "utf-8") -> str:
    text = raw.decode(encoding, errors="replace")
    if text.endswith("\r"):
        text = text[:-1]
    return text


class SocketLineStream:
    """Line stream over a connected stream socket.

    The socket timeout doubles as the write deadline and as the poll interval
    for the optional idle deadline on reads. Reads go through our own buffer
    so that a read timeout leaves the stream usable.
    """

    RECV_SIZE = 4096

    def __init__(
        self,
        sock: socket.socket,
        *,
        write_timeout_s: float = 10.0,
        idle_timeout_s: float = 0.0,
        max_line_bytes: int = 8192,
        encoding: str = "utf-8",
    ) -> None:
        self.sock = sock
        self.idle_timeout_s = float(idle_timeout_s)
        self.max_line_bytes = int(max_line_bytes)
        self.encoding = encoding

        self._buf = bytearray()
        self._eof = False
        self._closed = False
        self._close_lock = threading.Lock()

        timeout: float | None = None
        if write_timeout_s and write_timeout_s > 0:
            timeout = float(write_timeout_s)
        elif self.idle_timeout_s > 0:
            timeout = self.idle_timeout_s
        sock.settimeout(timeout)

    def peer(self) -> str:
        try:
            host, port = self.sock.getpeername()[:2]
            return f"{host}:{port}"
        except (OSError, ValueError):
            return "-"

    def readline(self) -> str | None:
        last_activity = time.monotonic()
        while True:
            idx = self._buf.find(b"\n")
            if self.max_line_bytes > 0 and (
                idx > self.max_line_bytes
                or (idx < 0 and len(self._buf) > self.max_line_bytes)
            ):
                raise ValueError(f"line exceeds {self.max_line_bytes} bytes")
            if idx >= 0:
                raw = bytes(self._buf[:idx])
                del self._buf[: idx + 1]
                return decode_line(raw, self.encoding)

            if self._eof:
                if self._buf:
                    raw = bytes(self._buf)
                    self._buf.clear()
                    return decode_line(raw, self.encoding)
                return None

            try:
                chunk = self.sock.recv(self.RECV_SIZE)
            except socket.timeout:
                if (
                    self.idle_timeout_s > 0
                    and time.monotonic() - last_activity >= self.idle_timeout_s
                ):
                    raise
                continue

            if not chunk:
                self._eof = True
                continue

            last_activity = time.monotonic()
            self._buf += chunk

    def write_line(self, text: str) -> None:
        self.sock.sendall((text + "\n").encode(self.encoding))

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()
