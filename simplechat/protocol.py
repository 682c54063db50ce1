from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import (
    CMD_LOGIN,
    ERR_ALREADY_LOGGED_IN,
    ERR_LOGIN_USAGE,
    ERR_MUST_LOGIN,
    MSG_LOGIN_OK,
    RELAY_FORMAT,
)
from .events import EventKind
from .util import split_command

if TYPE_CHECKING:
    from .service import ChatServer
    from .transport import Connection


class SessionProtocol:
    """
    Classifies every inbound line and enforces the login gate.

    A connection starts anonymous and becomes identified after its first
    successful ``#login <id>``; there is no way back. This class is
    responsible for:
    - Handling ``#login`` (success, usage error, duplicate login)
    - Rejecting and closing anonymous connections that send anything else
    - Relaying lines from identified connections to everyone, the sender
      included
    """

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self.log = logging.getLogger("simplechat.session")

    def on_message(self, conn: Connection, raw_line: str) -> None:
        """Main entry point for one inbound line from ``conn``."""
        if self.server.registry.get(conn) is None:
            # Already torn down; nothing to attribute the line to.
            return

        self.server.registry.touch(conn)
        self.server.stats_manager.inc("lines_in")
        self.server.stats_manager.inc(
            "bytes_in", len(raw_line.encode(self.server.config.encoding, "replace"))
        )

        line = raw_line.strip()

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("RX conn=%s line=%r", conn, line)

        if line.startswith(CMD_LOGIN):
            self._handle_login(conn, line)
            return

        login_id = self.server.registry.login_id(conn)
        if login_id is None:
            self._handle_anonymous(conn)
            return

        # Empty and whitespace-only lines are relayed like any other text.
        self._relay(login_id, line)

    def _handle_login(self, conn: Connection, line: str) -> None:
        _, remainder = split_command(line)
        candidate = remainder.strip() if remainder is not None else ""

        ok, login_id = self.server.registry.try_login(conn, candidate)

        if ok:
            self.server.stats_manager.inc("logins")
            self.log.info("Login conn=%s login_id=%r", conn, login_id)
            self.server.events.emit(
                EventKind.LOGIN_SUCCEEDED, connection=str(conn), login_id=login_id
            )
            self.server.router.send_to(conn, MSG_LOGIN_OK.format(login_id=login_id))
            return

        self.server.stats_manager.inc("logins_rejected")
        if login_id is not None:
            reason = f"already logged in as {login_id}"
            reply = ERR_ALREADY_LOGGED_IN.format(login_id=login_id)
        else:
            reason = "usage"
            reply = ERR_LOGIN_USAGE

        self.log.info("Login rejected conn=%s reason=%s", conn, reason)
        self.server.events.emit(
            EventKind.LOGIN_REJECTED,
            connection=str(conn),
            login_id=login_id,
            text=reason,
        )
        self.server.router.send_to(conn, reply)

    def _handle_anonymous(self, conn: Connection) -> None:
        self.server.stats_manager.inc("logins_rejected")
        self.log.info("Closing anonymous conn=%s: message before login", conn)
        self.server.events.emit(
            EventKind.LOGIN_REJECTED, connection=str(conn), text="not logged in"
        )
        self.server.router.send_to(conn, ERR_MUST_LOGIN)
        try:
            self.server.transport.close_connection(conn)
        except OSError as e:
            self.log.warning("Close failed conn=%s err=%s", conn, e)
            self.server.events.emit(
                EventKind.CLIENT_EXCEPTION, connection=str(conn), error=str(e)
            )

    def _relay(self, login_id: str, line: str) -> None:
        self.server.stats_manager.inc("msgs_relayed")
        self.server.events.emit(
            EventKind.MESSAGE_RELAYED, login_id=login_id, text=line
        )
        self.server.router.broadcast(RELAY_FORMAT.format(login_id=login_id, text=line))
