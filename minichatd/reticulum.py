"""Reticulum transport: each established RNS link is one line stream."""

from __future__ import annotations

import logging
import os
import queue
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import RNS

from .codec import encode_announce
from .paths import ensure_private_dir
from .stream import decode_line
from .util import expand_path

if TYPE_CHECKING:
    from .service import ChatService

# Used when a link does not report its MDU.
FALLBACK_MDU = 383


def fmt_link_id(link: RNS.Link) -> str:
    lid = getattr(link, "link_id", None)
    if isinstance(lid, (bytes, bytearray)):
        return bytes(lid).hex()
    h = getattr(link, "hash", None)
    if isinstance(h, (bytes, bytearray)):
        return bytes(h).hex()
    return "-"


class LinkLineStream:
    """
    Line stream over an RNS link.

    Inbound packets are reassembled into lines by the RNS callback thread and
    handed to the reader through a queue; outbound lines are split into
    packets that fit the link MDU.
    """

    def __init__(
        self,
        link: RNS.Link,
        *,
        idle_timeout_s: float = 0.0,
        max_line_bytes: int = 8192,
        encoding: str = "utf-8",
    ) -> None:
        self.link = link
        self.idle_timeout_s = float(idle_timeout_s)
        self.max_line_bytes = int(max_line_bytes)
        self.encoding = encoding

        self._lines: queue.Queue[str | None] = queue.Queue()
        self._partial = bytearray()
        self._feed_lock = threading.Lock()
        self._eof = False
        self._overflow = False

        link.set_packet_callback(lambda data, pkt: self.feed(data))
        link.set_link_closed_callback(lambda closed_link: self.feed_eof())

    def feed(self, data: bytes) -> None:
        with self._feed_lock:
            if self._eof:
                return
            self._partial += data
            while True:
                idx = self._partial.find(b"\n")
                if idx < 0:
                    break
                if self.max_line_bytes > 0 and idx > self.max_line_bytes:
                    self._fault()
                    return
                raw = bytes(self._partial[:idx])
                del self._partial[: idx + 1]
                self._lines.put(decode_line(raw, self.encoding))

            if self.max_line_bytes > 0 and len(self._partial) > self.max_line_bytes:
                self._fault()

    def _fault(self) -> None:
        """Stop accepting input after an over-long line. Call with the feed lock held."""
        self._overflow = True
        self._eof = True
        self._partial.clear()
        self._lines.put(None)

    def feed_eof(self) -> None:
        with self._feed_lock:
            if self._eof:
                return
            self._eof = True
            if self._partial:
                self._lines.put(decode_line(bytes(self._partial), self.encoding))
                self._partial.clear()
            self._lines.put(None)

    def readline(self) -> str | None:
        timeout = self.idle_timeout_s if self.idle_timeout_s > 0 else None
        try:
            line = self._lines.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"no input for {self.idle_timeout_s}s") from None
        if line is None and self._overflow:
            raise ValueError(f"line exceeds {self.max_line_bytes} bytes")
        return line

    def write_line(self, text: str) -> None:
        payload = (text + "\n").encode(self.encoding)
        mdu = getattr(self.link, "MDU", None) or FALLBACK_MDU
        for start in range(0, len(payload), int(mdu)):
            RNS.Packet(self.link, payload[start : start + int(mdu)]).send()

    def close(self) -> None:
        if getattr(self.link, "status", None) == RNS.Link.CLOSED:
            return
        self.link.teardown()


class ReticulumTransport:
    def __init__(self, hub: ChatService) -> None:
        self.hub = hub
        self.log = logging.getLogger("minichatd.reticulum")
        self.identity: RNS.Identity | None = None
        self.destination: RNS.Destination | None = None

    def start(self) -> None:
        cfg = self.hub.config
        self.log.info("Starting Reticulum")
        RNS.Reticulum(configdir=cfg.rns_configdir, require_shared_instance=False)

        if not cfg.identity_path:
            raise RuntimeError("identity_path is not set")
        self.identity = self._load_identity(cfg.identity_path)

        parts = [p for p in str(cfg.dest_name).split(".") if p]
        if not parts:
            raise ValueError("dest_name must not be empty")
        app_name, aspects = parts[0], parts[1:]

        self.destination = RNS.Destination(
            self.identity,
            RNS.Destination.IN,
            RNS.Destination.SINGLE,
            app_name,
            *aspects,
        )
        self.destination.set_link_established_callback(self._on_link)

        if cfg.announce_on_start:
            self.announce()

        self.log.info(
            "Reticulum destination dest_name=%s dest_hash=%s",
            cfg.dest_name,
            self.destination.hash.hex(),
        )

    def _load_identity(self, path: str) -> RNS.Identity:
        p = expand_path(path)
        if not os.path.exists(p):
            storage_dir = os.path.dirname(p)
            if storage_dir:
                ensure_private_dir(Path(storage_dir))
            ident = RNS.Identity()
            ident.to_file(p)
            try:
                os.chmod(p, 0o600)
            except OSError:
                pass
            self.log.info("Created server identity at %s", p)
            return ident

        ident = RNS.Identity.from_file(p)
        if ident is None:
            raise RuntimeError(f"Failed to load identity from {p}")
        return ident

    def announce_data(self) -> bytes:
        return encode_announce(self.hub.config.server_name)

    def announce(self) -> None:
        if self.destination is None:
            return
        try:
            self.destination.announce(app_data=self.announce_data())
        except Exception:
            self.log.exception("Announce failed")

    def _on_link(self, link: RNS.Link) -> None:
        cfg = self.hub.config
        stream = LinkLineStream(
            link,
            idle_timeout_s=cfg.idle_timeout_s,
            max_line_bytes=cfg.max_line_bytes,
        )
        self.log.info("Link established link_id=%s", fmt_link_id(link))
        self.hub.handle_stream(stream, peer=f"rns:{fmt_link_id(link)[:12]}")

    def stop(self) -> None:
        self.destination = None
