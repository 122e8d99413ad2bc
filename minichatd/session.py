from __future__ import annotations

import itertools
import logging
import queue
import threading
from typing import TYPE_CHECKING

from .constants import (
    NOTICE_USERNAME_INVALID,
    NOTICE_USERNAME_TAKEN,
    NOTICE_WELCOME,
    PROMPT_USERNAME,
)
from .util import normalize_username

if TYPE_CHECKING:
    from .service import ChatService
    from .stream import LineStream

_session_ids = itertools.count(1)

# Queued after the last outbound line; tells the writer thread to exit.
_CLOSE = object()


class Session:
    """
    Server-side state for one connection.

    The reader side (``run``) drives the username handshake and the command
    loop on the calling thread. Outbound lines are queued by ``send`` from any
    thread and written by a dedicated writer thread, so writes to the stream
    are serialized and never performed while the registry lock is held.
    """

    def __init__(self, stream: LineStream, hub: ChatService, *, peer: str = "-") -> None:
        self.stream = stream
        self.hub = hub
        self.peer = peer
        self.sid = next(_session_ids)
        self.log = logging.getLogger("minichatd.session")

        self.username: str | None = None
        self.open = True

        self._outbox: queue.Queue = queue.Queue()
        self._close_lock = threading.Lock()
        self._closed = False
        self._writer = threading.Thread(
            target=self._write_loop,
            name=f"minichatd-writer-{self.sid}",
            daemon=True,
        )
        self._writer_started = False

    def __repr__(self) -> str:
        return f"<Session sid={self.sid} username={self.username!r} peer={self.peer}>"

    # Outbound

    def start_writer(self) -> None:
        if not self._writer_started:
            self._writer_started = True
            self._writer.start()

    def send(self, text: str) -> bool:
        """Queue one line for delivery. Returns False if the line was dropped."""
        if not self.open:
            return False

        limit = int(self.hub.config.outbound_queue_max)
        if limit > 0 and self._outbox.qsize() >= limit:
            self.hub.stats_manager.inc("dropped")
            self.log.warning(
                "Outbound queue full, dropping line sid=%s username=%r backlog=%d",
                self.sid,
                self.username,
                self._outbox.qsize(),
            )
            return False

        self._outbox.put(text)
        return True

    def pending(self) -> int:
        return self._outbox.qsize()

    def _write_loop(self) -> None:
        while True:
            item = self._outbox.get()
            if item is _CLOSE:
                return
            try:
                self.stream.write_line(item)
            except OSError as e:
                self.hub.stats_manager.inc("stream_faults")
                self.log.warning(
                    "Write failed sid=%s username=%r err=%s", self.sid, self.username, e
                )
                self.open = False
                # Unblocks the reader, whose cleanup closes the session.
                try:
                    self.stream.close()
                except OSError:
                    pass
                return

    # Lifecycle

    def run(self) -> None:
        """Handshake, then dispatch lines until EOF, /quit or a stream fault."""
        self.start_writer()
        self.log.info("Session opened sid=%s peer=%s", self.sid, self.peer)
        try:
            if not self._handshake():
                return

            self.send(NOTICE_WELCOME.format(username=self.username))

            while self.open:
                line = self.stream.readline()
                if line is None:
                    break
                self.hub.command_handler.dispatch(self, line)
        except (OSError, ValueError) as e:
            if self.open:
                self.hub.stats_manager.inc("stream_faults")
                self.log.warning(
                    "Stream fault sid=%s username=%r err=%s", self.sid, self.username, e
                )
        finally:
            self.close()

    def _handshake(self) -> bool:
        registry = self.hub.registry
        max_chars = int(self.hub.config.username_max_chars)

        while self.open:
            self.send(PROMPT_USERNAME)
            candidate = self.stream.readline()
            if candidate is None:
                self.log.info("Peer disconnected before username sid=%s", self.sid)
                return False

            username = normalize_username(candidate, max_chars=max_chars)
            if username is None:
                self.send(NOTICE_USERNAME_INVALID)
                continue

            if not registry.register(username, self):
                self.send(NOTICE_USERNAME_TAKEN)
                continue

            self.username = username
            self.log.info("Username bound sid=%s username=%r", self.sid, username)
            return True

        return False

    def close(self) -> None:
        """Deregister, flush queued lines and release the stream. Idempotent."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self.open = False

        if self.username is not None:
            self.hub.registry.deregister(self.username, self)
            self.log.info("%s has disconnected.", self.username)

        self._outbox.put(_CLOSE)
        if self._writer_started and threading.current_thread() is not self._writer:
            timeout = float(self.hub.config.write_timeout_s)
            self._writer.join(timeout=timeout + 1.0 if timeout > 0 else None)

        try:
            self.stream.close()
        except OSError as e:
            self.log.debug("Stream close failed sid=%s err=%s", self.sid, e)

        self.log.info("Session closed sid=%s peer=%s", self.sid, self.peer)
