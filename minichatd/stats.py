"""Statistics tracking and reporting for the chat server."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import ChatService


class StatsManager:
    """
    Keeps lifetime counters for the server.

    Tracks:
    - Connections accepted and usernames registered
    - Rejected handshakes (name taken)
    - Private, group and default-group messages routed
    - Individual line deliveries and dropped outbound lines
    - Group creation and deletion
    - Stream faults
    """

    def __init__(self, hub: ChatService | None = None) -> None:
        self.hub = hub
        self._lock = threading.Lock()

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "connections": 0,
            "registrations": 0,
            "names_taken": 0,
            "private_msgs": 0,
            "group_msgs": 0,
            "default_msgs": 0,
            "default_rejected": 0,
            "deliveries": 0,
            "dropped": 0,
            "groups_created": 0,
            "groups_deleted": 0,
            "stream_faults": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        with self._lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self._lock:
            return int(self._counters.get(key, 0))

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0
        c = self.snapshot()

        lines: list[str] = []
        lines.append(f"minichatd {__version__} stats")
        lines.append(f"uptime_s={uptime_s:.1f}")

        if self.hub is not None:
            reg = self.hub.registry.get_stats()
            lines.append(
                f"users={reg['users']} groups={reg['groups']} "
                f"memberships={reg['memberships']}"
            )

        lines.append(
            "sessions: connections={} registrations={} names_taken={} stream_faults={}".format(
                c.get("connections", 0),
                c.get("registrations", 0),
                c.get("names_taken", 0),
                c.get("stream_faults", 0),
            )
        )
        lines.append(
            "messages: private={} group={} default={} default_rejected={}".format(
                c.get("private_msgs", 0),
                c.get("group_msgs", 0),
                c.get("default_msgs", 0),
                c.get("default_rejected", 0),
            )
        )
        lines.append(
            "delivery: lines={} dropped={}".format(
                c.get("deliveries", 0),
                c.get("dropped", 0),
            )
        )
        lines.append(
            "groups: created={} deleted={}".format(
                c.get("groups_created", 0),
                c.get("groups_deleted", 0),
            )
        )

        return "\n".join(lines)
