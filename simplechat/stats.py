"""Statistics tracking and reporting for the chat server."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import ChatServer


class StatsManager:
    """
    Manages server statistics collection and reporting.

    Tracks counters for:
    - Lines and bytes in/out
    - Logins accepted and rejected
    - Messages relayed and system broadcasts
    - Per-recipient delivery failures
    - Connections accepted and closed
    """

    def __init__(self, server: ChatServer) -> None:
        self.server = server

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "lines_in": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "logins": 0,
            "logins_rejected": 0,
            "msgs_relayed": 0,
            "system_broadcasts": 0,
            "send_failures": 0,
            "connections_accepted": 0,
            "connections_closed": 0,
        }

    def set_start_time(self) -> None:
        """Set the start time for uptime calculations."""
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        """Increment a counter by the given delta."""
        with self.server._state_lock:
            self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        with self.server._state_lock:
            return int(self._counters.get(key, 0))

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        now_mono = time.monotonic()
        started_mono = self.started_monotonic
        uptime_s = (now_mono - started_mono) if started_mono is not None else 0.0

        session_stats = self.server.registry.get_stats()
        port = self.server.control.get_port()
        listening = self.server.control.is_listening()
        with self.server._state_lock:
            c = dict(self._counters)

        lines: list[str] = []
        lines.append(f"simplechat {__version__} stats")
        started = (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime(self.started_wall_time))
            if self.started_wall_time is not None
            else "-"
        )
        lines.append(f"started={started} uptime_s={uptime_s:.1f}")
        lines.append(f"port={port} listening={listening}")
        lines.append(
            f"clients_total={session_stats['total']} "
            f"clients_identified={session_stats['identified']} "
            f"clients_anonymous={session_stats['anonymous']}"
        )
        lines.append(
            "io: lines_in={} bytes_in={} bytes_out={} send_failures={}".format(
                c.get("lines_in", 0),
                c.get("bytes_in", 0),
                c.get("bytes_out", 0),
                c.get("send_failures", 0),
            )
        )
        lines.append(
            "events: logins={} logins_rejected={} msgs_relayed={} system_broadcasts={}".format(
                c.get("logins", 0),
                c.get("logins_rejected", 0),
                c.get("msgs_relayed", 0),
                c.get("system_broadcasts", 0),
            )
        )
        lines.append(
            "connections: accepted={} closed={}".format(
                c.get("connections_accepted", 0),
                c.get("connections_closed", 0),
            )
        )

        return "\n".join(lines)
