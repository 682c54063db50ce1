from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .config import persist_port
from .constants import (
    OP_ALREADY_LISTENING,
    OP_ALREADY_STOPPED,
    OP_ERROR_CLOSING,
    OP_PORT,
    OP_PORT_NOT_NUMBER,
    OP_PORT_OUT_OF_RANGE,
    OP_PORT_SET,
    OP_SETPORT_USAGE,
    OP_SETPORT_WHILE_OPEN,
    OP_START_FAILED,
)
from .events import EventKind
from .transport import TransportError
from .util import PortRangeError, expand_path, parse_port

if TYPE_CHECKING:
    from .service import ChatServer


@dataclass
class ServerState:
    """Listening endpoint state. Mutated only under ``ServerControl._lock``."""

    port: int
    listening: bool = False


class ServerControl:
    """
    Operator-facing control of the listening endpoint.

    Every operation runs under one lock, so a port change that races a
    ``start`` is rejected once the start has completed, never interleaved
    with it. Methods return the text to show the operator, or ``None``
    when the outcome is reported through events instead.
    """

    def __init__(self, server: ChatServer, *, port: int) -> None:
        self.server = server
        self.log = logging.getLogger("simplechat.control")
        self._lock = threading.Lock()
        self.state = ServerState(port=port)

    def _sync_locked(self) -> None:
        # The accept loop drops the listener on its own after an accept error.
        if self.state.listening and not self.server.transport.is_listening():
            self.state.listening = False

    def is_listening(self) -> bool:
        with self._lock:
            self._sync_locked()
            return self.state.listening

    def get_port(self) -> int:
        with self._lock:
            return self.state.port

    def start(self) -> str | None:
        with self._lock:
            self._sync_locked()
            if self.state.listening:
                return OP_ALREADY_LISTENING
            try:
                self.server.transport.listen(self.state.port)
            except TransportError as e:
                self.log.error("Start failed port=%s: %s", self.state.port, e)
                self.server.listening_exception(e)
                return OP_START_FAILED
            self.state.listening = True
            return None

    def stop(self) -> str | None:
        with self._lock:
            self._sync_locked()
            if not self.state.listening:
                return OP_ALREADY_STOPPED
            self.server.transport.stop_listening()
            self.state.listening = False
            return None

    def close(self) -> str | None:
        with self._lock:
            try:
                self.server.transport.close()
            except OSError as e:
                self.log.error("Close failed: %s", e)
                self.server.events.emit(EventKind.LISTENING_EXCEPTION, error=str(e))
                return OP_ERROR_CLOSING
            finally:
                self._sync_locked()
            self.state.listening = False

        self.log.info("Server closed")
        self.server.events.emit(EventKind.SERVER_CLOSED)
        return None

    def set_port(self, value: str | None) -> str:
        with self._lock:
            self._sync_locked()
            if self.state.listening:
                return OP_SETPORT_WHILE_OPEN
            if value is None or not value.strip():
                return OP_SETPORT_USAGE
            try:
                port = parse_port(value)
            except PortRangeError:
                return OP_PORT_OUT_OF_RANGE
            except ValueError:
                return OP_PORT_NOT_NUMBER
            self.state.port = port

        self.log.info("Port set to %s", port)
        reply = OP_PORT_SET.format(port=port)
        persisted = self._persist_port(port)
        if persisted is not None:
            reply = f"{reply} ({persisted})"
        return reply

    def report_port(self) -> str:
        return OP_PORT.format(port=self.get_port())

    def _persist_port(self, port: int) -> str | None:
        cfg = self.server.config
        if not cfg.persist_port:
            return None
        if not cfg.config_path:
            return "not persisted; no config file"
        path = expand_path(str(cfg.config_path))
        try:
            persist_port(path, port)
        except (OSError, ValueError) as e:
            self.log.warning("Persisting port to %s failed: %s", path, e)
            return f"persist failed: {e}"
        return f"saved to {path}"
