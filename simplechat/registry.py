from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .service import ChatServer
    from .transport import Connection


@dataclass
class SessionInfo:
    """Per-connection attributes attached by the server."""

    login_id: str | None = None
    connected_at: float = field(default_factory=time.monotonic)
    lines_in: int = 0


class ConnectionRegistry:
    """
    Tracks every live connection and its per-connection attributes.

    This class is responsible for:
    - Session creation on connect and teardown on disconnect
    - The exactly-once login check-and-set
    - Snapshots of live connections for broadcast fan-out

    Every method takes the server state lock, so callers may hold it or not.
    """

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self.log = logging.getLogger("simplechat.session")
        self.sessions: dict[Connection, SessionInfo] = {}

    def add(self, conn: Connection) -> SessionInfo:
        with self.server._state_lock:
            info = self.sessions.get(conn)
            if info is None:
                info = SessionInfo()
                self.sessions[conn] = info
        self.log.info("Session created conn=%s", conn)
        return info

    def remove(self, conn: Connection) -> SessionInfo | None:
        with self.server._state_lock:
            return self.sessions.pop(conn, None)

    def get(self, conn: Connection) -> SessionInfo | None:
        with self.server._state_lock:
            return self.sessions.get(conn)

    def login_id(self, conn: Connection) -> str | None:
        with self.server._state_lock:
            info = self.sessions.get(conn)
            return info.login_id if info is not None else None

    def try_login(self, conn: Connection, candidate: str) -> tuple[bool, str | None]:
        """
        Atomically claim ``candidate`` as the login identifier of ``conn``.

        Returns:
            (True, candidate) when the login was recorded.
            (False, existing) when the connection is already identified;
            the existing identifier is never overwritten.
            (False, None) when ``candidate`` is blank or the connection is
            unknown.
        """
        with self.server._state_lock:
            info = self.sessions.get(conn)
            if info is None:
                return False, None
            if info.login_id is not None:
                return False, info.login_id
            if not candidate or not candidate.strip():
                return False, None
            info.login_id = candidate
            return True, candidate

    def touch(self, conn: Connection) -> None:
        with self.server._state_lock:
            info = self.sessions.get(conn)
            if info is not None:
                info.lines_in += 1

    def connections(self) -> list[Connection]:
        """Snapshot of every registered connection, identified or not."""
        with self.server._state_lock:
            return list(self.sessions.keys())

    def identified(self) -> dict[Connection, str]:
        with self.server._state_lock:
            return {
                conn: info.login_id
                for conn, info in self.sessions.items()
                if info.login_id is not None
            }

    def get_stats(self) -> dict[str, Any]:
        with self.server._state_lock:
            total = len(self.sessions)
            identified = len(self.identified())

        return {
            "total": total,
            "identified": identified,
            "anonymous": total - identified,
        }
