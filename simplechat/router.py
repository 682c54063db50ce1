from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import SYSTEM_FORMAT
from .events import EventKind

if TYPE_CHECKING:
    from .service import ChatServer
    from .transport import Connection


class BroadcastRouter:
    """
    Delivers formatted text to connections.

    This class is responsible for:
    - Unicast replies to a single connection
    - Fan-out of relayed chat lines to every live connection
    - Unprefixed operator broadcasts (``SERVER msg> ...``)

    Delivery failures are per recipient: they are logged, counted and
    reported as ``client-exception`` events, and never raised to the caller.
    """

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self.log = logging.getLogger("simplechat.router")

    def send_to(self, conn: Connection, text: str) -> bool:
        try:
            sent = self.server.transport.send_to(conn, text)
        except OSError as e:
            self._delivery_failed(conn, e)
            return False
        self.server.stats_manager.inc("bytes_out", sent)
        return True

    def broadcast(self, text: str) -> None:
        # Snapshot without holding the lock across socket writes.
        recipients = self.server.registry.connections()
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("Broadcast to %d connection(s): %r", len(recipients), text)

        failures = self.server.transport.send_to_all(text, recipients)

        delivered = len(recipients) - len(failures)
        if delivered:
            per_line = len(text.encode(self.server.config.encoding, "replace")) + 1
            self.server.stats_manager.inc("bytes_out", per_line * delivered)

        for conn, exc in failures:
            self._delivery_failed(conn, exc)

    def broadcast_system(self, text: str) -> str:
        """Broadcast operator text unprefixed by any login id."""
        line = SYSTEM_FORMAT.format(text=text)
        self.server.stats_manager.inc("system_broadcasts")
        self.broadcast(line)
        return line

    def _delivery_failed(self, conn: Connection, exc: OSError) -> None:
        self.server.stats_manager.inc("send_failures")
        self.log.warning("Send failed conn=%s err=%s", conn, exc)
        self.server.events.emit(
            EventKind.CLIENT_EXCEPTION, connection=str(conn), error=str(exc)
        )
