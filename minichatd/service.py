from __future__ import annotations

import logging
import signal
import threading
import time
from typing import TYPE_CHECKING

from .commands import CommandHandler
from .config import ServerRuntimeConfig
from .registry import Registry
from .session import Session
from .stats import StatsManager
from .transport import TcpTransport

if TYPE_CHECKING:
    from .reticulum import ReticulumTransport
    from .stream import LineStream


class ChatService:
    def __init__(self, config: ServerRuntimeConfig) -> None:
        self.config = config
        self.log = logging.getLogger("minichatd.server")

        self._shutdown = threading.Event()
        self._started = False

        self.stats_manager = StatsManager(self)

        # Usernames and group memberships; the only state shared between
        # connections. Guarded internally by a single registry-wide lock.
        self.registry = Registry(config.default_group, stats=self.stats_manager)

        self.command_handler = CommandHandler(self)

        self.tcp_transport: TcpTransport | None = None
        self.reticulum_transport: ReticulumTransport | None = None

        # Every live session, including ones still in the username handshake.
        self._sessions: set[Session] = set()
        self._sessions_lock = threading.Lock()

    def handle_stream(self, stream: LineStream, *, peer: str = "-") -> Session:
        """Start a session for a newly accepted stream on its own thread."""
        session = Session(stream, self, peer=peer)
        with self._sessions_lock:
            self._sessions.add(session)
        self.stats_manager.inc("connections")

        t = threading.Thread(
            target=self._run_session,
            args=(session,),
            name=f"minichatd-session-{session.sid}",
            daemon=True,
        )
        t.start()
        return session

    def _run_session(self, session: Session) -> None:
        try:
            session.run()
        finally:
            with self._sessions_lock:
                self._sessions.discard(session)

    def session_count(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.stats_manager.set_start_time()

        if not self.config.enable_tcp and not self.config.enable_reticulum:
            raise RuntimeError("no transport enabled (enable_tcp / enable_reticulum)")

        if self.config.enable_tcp:
            self.tcp_transport = TcpTransport(self)
            self.tcp_transport.start()

        if self.config.enable_reticulum:
            from .reticulum import ReticulumTransport

            self.reticulum_transport = ReticulumTransport(self)
            self.reticulum_transport.start()

        self.log.info(
            "Server running default_group=%s username_max_chars=%s "
            "outbound_queue_max=%s write_timeout_s=%s idle_timeout_s=%s",
            self.config.default_group,
            self.config.username_max_chars,
            self.config.outbound_queue_max,
            self.config.write_timeout_s,
            self.config.idle_timeout_s,
        )

    def run_forever(self) -> None:
        if not self._started:
            self.start()

        signal.signal(signal.SIGINT, lambda *_: self._shutdown.set())
        signal.signal(signal.SIGTERM, lambda *_: self._shutdown.set())

        while not self._shutdown.is_set():
            time.sleep(0.25)

        self.stop()

    def stop(self) -> None:
        self._shutdown.set()

        if self.tcp_transport is not None:
            self.tcp_transport.stop()
        if self.reticulum_transport is not None:
            self.reticulum_transport.stop()

        with self._sessions_lock:
            sessions = list(self._sessions)

        for session in sessions:
            session.close()

        self.registry.clear_all()
        self.log.info("Server stopped\n%s", self.stats_manager.format_stats())
