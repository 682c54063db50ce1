from __future__ import annotations

import logging
import signal
import threading

from . import __version__
from .commands import CommandHandler, CommandResult
from .config import ServerRuntimeConfig
from .constants import CMD_PREFIX
from .control import ServerControl
from .events import EventKind, EventSink
from .protocol import SessionProtocol
from .registry import ConnectionRegistry
from .router import BroadcastRouter
from .stats import StatsManager
from .transport import Connection, ConnectionServer


class ChatServer:
    """The chat relay: transport callbacks in, operator surface out.

    Implements the transport's ``ConnectionHandler`` interface and owns the
    registry, protocol, router, control surface and event sink. The server
    never exits the process; ``#quit`` is returned to the driver as a
    ``CommandResult`` with ``quit=True``.
    """

    def __init__(
        self,
        config: ServerRuntimeConfig,
        *,
        transport: ConnectionServer | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("simplechat.server")

        # Sessions and counters are touched from one reader thread per
        # connection plus the console thread. Guard them with a single
        # re-entrant lock; never hold it across socket writes.
        self._state_lock = threading.RLock()

        self._shutdown = threading.Event()

        self.events = EventSink()
        self.stats_manager = StatsManager(self)
        self.registry = ConnectionRegistry(self)
        self.router = BroadcastRouter(self)
        self.protocol = SessionProtocol(self)
        self.command_handler = CommandHandler(self)

        if transport is None:
            transport = ConnectionServer(
                self,
                host=config.host,
                backlog=config.backlog,
                encoding=config.encoding,
                max_line_bytes=config.max_line_bytes,
            )
        self.transport = transport
        self.control = ServerControl(self, port=config.port)

    # Connection event handler

    def client_connected(self, conn: Connection) -> None:
        self.registry.add(conn)
        self.stats_manager.inc("connections_accepted")
        self.log.info("Client connected conn=%s", conn)
        self.events.emit(EventKind.CLIENT_CONNECTED, connection=str(conn))

    def client_disconnected(self, conn: Connection) -> None:
        info = self.registry.remove(conn)
        if info is None:
            return
        self.stats_manager.inc("connections_closed")
        self.log.info(
            "Client disconnected conn=%s login_id=%r lines_in=%s",
            conn,
            info.login_id,
            info.lines_in,
        )
        self.events.emit(
            EventKind.CLIENT_DISCONNECTED, connection=str(conn), login_id=info.login_id
        )

    def message_received(self, conn: Connection, line: str) -> None:
        self.protocol.on_message(conn, line)

    def listening_started(self, port: int) -> None:
        self.events.emit(EventKind.SERVER_STARTED, port=port)

    def listening_stopped(self) -> None:
        self.events.emit(EventKind.SERVER_STOPPED)

    def listening_exception(self, exc: Exception) -> None:
        self.log.warning("Listening exception: %s", exc)
        self.events.emit(EventKind.LISTENING_EXCEPTION, error=str(exc))

    def client_exception(self, conn: Connection, exc: Exception) -> None:
        self.log.warning("Client exception conn=%s err=%s", conn, exc)
        self.events.emit(EventKind.CLIENT_EXCEPTION, connection=str(conn), error=str(exc))

    # Operator surface

    def submit_admin_command(self, text: str) -> CommandResult:
        result = self.command_handler.handle(text)
        if result.quit:
            self.request_shutdown()
        return result

    def submit_broadcast(self, text: str) -> CommandResult:
        line = self.router.broadcast_system(text)
        return CommandResult(messages=(line,))

    def submit(self, line: str) -> CommandResult:
        """Route one console line: ``#``-prefixed lines are commands."""
        if line.startswith(CMD_PREFIX):
            return self.submit_admin_command(line)
        return self.submit_broadcast(line)

    # Lifecycle

    def start(self) -> str | None:
        if self.stats_manager.started_monotonic is None:
            self.stats_manager.set_start_time()
        self.log.info(
            "Starting simplechat %s host=%s port=%s",
            __version__,
            self.config.host,
            self.control.get_port(),
        )
        return self.control.start()

    def request_shutdown(self) -> None:
        """Ask :meth:`run_forever` to return. Safe from a signal handler."""
        self._shutdown.set()

    def install_signal_handlers(self) -> None:
        # Handlers only flag the shutdown; stop() must never run inside one.
        signal.signal(signal.SIGINT, lambda *_: self.request_shutdown())
        signal.signal(signal.SIGTERM, lambda *_: self.request_shutdown())

    def run_forever(self) -> None:
        """Block until shutdown is requested. The caller must call :meth:`stop`."""
        self.install_signal_handlers()

        while not self._shutdown.wait(0.25):
            pass

    def stop(self) -> None:
        self.request_shutdown()
        if self.control.is_listening() or self.transport.connections():
            self.control.close()
