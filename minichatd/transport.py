"""TCP accept loop handing each connection to the service as a line stream."""

from __future__ import annotations

import logging
import socket
import threading
from typing import TYPE_CHECKING

from .stream import SocketLineStream

if TYPE_CHECKING:
    from .service import ChatService


class TcpTransport:
    ACCEPT_POLL_S = 0.5

    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("minichatd.transport")
        self.address: tuple[str, int] | None = None

        self._sock: socket.socket | None = None
        self._thread: threading.Thread | None = None
        self._stopping = threading.Event()

    def start(self) -> None:
        cfg = self.hub.config
        family = socket.AF_INET6 if ":" in str(cfg.listen_host) else socket.AF_INET
        sock = socket.create_server(
            (cfg.listen_host, int(cfg.listen_port)), family=family
        )
        sock.settimeout(self.ACCEPT_POLL_S)
        self._sock = sock
        host, port = sock.getsockname()[:2]
        self.address = (host, port)

        self._thread = threading.Thread(
            target=self._accept_loop, name="minichatd-accept", daemon=True
        )
        self._thread.start()
        self.log.info("Listening on %s:%s", host, port)

    def _accept_loop(self) -> None:
        sock = self._sock
        if sock is None:
            return

        cfg = self.hub.config
        while not self._stopping.is_set():
            try:
                conn, addr = sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break
                self.log.warning("Accept failed: %s", e)
                continue

            peer = f"{addr[0]}:{addr[1]}"
            self.log.debug("Accepted connection peer=%s", peer)
            stream = SocketLineStream(
                conn,
                write_timeout_s=cfg.write_timeout_s,
                idle_timeout_s=cfg.idle_timeout_s,
                max_line_bytes=cfg.max_line_bytes,
            )
            self.hub.handle_stream(stream, peer=peer)

    def stop(self) -> None:
        self._stopping.set()
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.ACCEPT_POLL_S * 4)
