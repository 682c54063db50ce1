"""Threaded TCP connection server.

Accepts stream connections, frames inbound bytes into text lines and reports
every lifecycle event to a :class:`ConnectionHandler`. The transport knows
nothing about logins or chat formatting.
"""

from __future__ import annotations

import itertools
import logging
import socket
import threading
from collections.abc import Iterable, Iterator
from typing import Protocol

from .constants import LINE_TERMINATOR, MAX_LINE_BYTES

ACCEPT_POLL_S = 0.25


class TransportError(RuntimeError):
    """Raised when the listening socket cannot be opened."""


class LineTooLongError(ConnectionError):
    """A peer sent more than ``max_line_bytes`` without a line terminator."""


class ConnectionHandler(Protocol):
    def client_connected(self, conn: Connection) -> None: ...

    def client_disconnected(self, conn: Connection) -> None: ...

    def message_received(self, conn: Connection, line: str) -> None: ...

    def listening_started(self, port: int) -> None: ...

    def listening_stopped(self) -> None: ...

    def listening_exception(self, exc: Exception) -> None: ...

    def client_exception(self, conn: Connection, exc: Exception) -> None: ...


class Connection:
    """One accepted client socket.

    Writes are serialized with a per-connection lock so that concurrent
    broadcasts never interleave bytes of two lines.
    """

    _ids = itertools.count(1)

    def __init__(
        self,
        sock: socket.socket,
        address: tuple | None = None,
        *,
        encoding: str = "utf-8",
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self.conn_id = next(Connection._ids)
        self.sock = sock
        self.address = address
        self.encoding = encoding
        self.max_line_bytes = max_line_bytes
        self._send_lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, text: str) -> int:
        """Send one line. Raises OSError if the peer is gone."""
        payload = (text + LINE_TERMINATOR).encode(self.encoding, "replace")
        with self._send_lock:
            if self._closed.is_set():
                raise ConnectionError(f"connection {self} is closed")
            self.sock.sendall(payload)
        return len(payload)

    def read_lines(self) -> Iterator[str]:
        """Yield inbound lines without their terminators until EOF.

        Raises LineTooLongError once a line outgrows ``max_line_bytes``.
        """
        f = self.sock.makefile("rb")
        try:
            while True:
                raw = f.readline(self.max_line_bytes + 1)
                if not raw:
                    break
                if len(raw) > self.max_line_bytes:
                    raise LineTooLongError(
                        f"line longer than {self.max_line_bytes} bytes from {self}"
                    )
                yield raw.decode(self.encoding, "replace").rstrip("\r\n")
        finally:
            f.close()

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone.
            pass
        self.sock.close()

    def __str__(self) -> str:
        if self.address and len(self.address) >= 2:
            return f"{self.address[0]}:{self.address[1]}#{self.conn_id}"
        return f"conn#{self.conn_id}"

    def __repr__(self) -> str:
        return f"<Connection {self}>"


class ConnectionServer:
    """
    Listening endpoint plus the set of live connections.

    - ``listen(port)`` binds and starts an accept thread.
    - ``stop_listening()`` stops accepting but keeps existing connections.
    - ``close()`` stops listening and terminates every connection.
    - Each connection gets a dedicated reader thread.
    """

    def __init__(
        self,
        handler: ConnectionHandler,
        *,
        host: str = "0.0.0.0",
        backlog: int = 10,
        encoding: str = "utf-8",
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self.handler = handler
        self.host = host
        self.backlog = backlog
        self.encoding = encoding
        self.max_line_bytes = max_line_bytes
        self.log = logging.getLogger("simplechat.transport")

        self._lock = threading.Lock()
        self._listener: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._stop_accepting = threading.Event()
        self._connections: set[Connection] = set()
        self.bound_port: int | None = None

    def is_listening(self) -> bool:
        with self._lock:
            return self._listener is not None

    def connections(self) -> list[Connection]:
        with self._lock:
            return list(self._connections)

    def listen(self, port: int) -> int:
        """Bind ``port`` and start accepting. Returns the bound port."""
        with self._lock:
            if self._listener is not None:
                raise TransportError("already listening")
            try:
                listener = socket.create_server(
                    (self.host, port), backlog=self.backlog, reuse_port=False
                )
            except OSError as e:
                raise TransportError(f"could not listen on {self.host}:{port}: {e}") from e
            listener.settimeout(ACCEPT_POLL_S)
            self._listener = listener
            self.bound_port = listener.getsockname()[1]
            self._stop_accepting.clear()
            self._accept_thread = threading.Thread(
                target=self._accept_loop,
                args=(listener,),
                name="simplechat-accept",
                daemon=True,
            )
            self._accept_thread.start()
            bound = self.bound_port

        self.log.info("Listening on %s:%s", self.host, bound)
        self.handler.listening_started(bound)
        return bound

    def stop_listening(self) -> bool:
        """Stop accepting new connections. Returns False if not listening."""
        with self._lock:
            listener = self._listener
            thread = self._accept_thread
            if listener is None:
                return False
            self._listener = None
            self._accept_thread = None
            self._stop_accepting.set()

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
        listener.close()
        self.bound_port = None

        self.log.info("Stopped listening")
        self.handler.listening_stopped()
        return True

    def close(self) -> None:
        """Stop listening and terminate every connection.

        Every connection is closed even if some fail; the first failure is
        raised afterwards.
        """
        self.stop_listening()
        first_error: OSError | None = None
        for conn in self.connections():
            try:
                self.close_connection(conn)
            except OSError as e:
                self.log.warning("Close failed conn=%s err=%s", conn, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    def close_connection(self, conn: Connection) -> None:
        conn.close()

    def send_to(self, conn: Connection, text: str) -> int:
        return conn.send(text)

    def send_to_all(
        self, text: str, recipients: Iterable[Connection] | None = None
    ) -> list[tuple[Connection, OSError]]:
        """Send ``text`` to each recipient (default: every live connection).

        A failure for one connection does not stop delivery to the others;
        failures are returned to the caller.
        """
        targets = list(recipients) if recipients is not None else self.connections()
        failures: list[tuple[Connection, OSError]] = []
        for conn in targets:
            try:
                self.send_to(conn, text)
            except OSError as e:
                failures.append((conn, e))
        return failures

    def _accept_loop(self, listener: socket.socket) -> None:
        while not self._stop_accepting.is_set():
            try:
                sock, address = listener.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stop_accepting.is_set():
                    break
                self.log.warning("Accept failed: %s", e)
                with self._lock:
                    if self._listener is listener:
                        self._listener = None
                        self._accept_thread = None
                        self.bound_port = None
                listener.close()
                self.handler.listening_exception(e)
                break

            sock.setblocking(True)
            conn = Connection(
                sock,
                address,
                encoding=self.encoding,
                max_line_bytes=self.max_line_bytes,
            )
            with self._lock:
                self._connections.add(conn)

            threading.Thread(
                target=self._serve_connection,
                args=(conn,),
                name=f"simplechat-conn-{conn.conn_id}",
                daemon=True,
            ).start()

    def _serve_connection(self, conn: Connection) -> None:
        self.log.debug("Accepted %s", conn)
        try:
            # Register before reading so no line is handled for an unknown
            # connection.
            self.handler.client_connected(conn)
            for line in conn.read_lines():
                self.handler.message_received(conn, line)
        except OSError as e:
            if not conn.closed:
                self.handler.client_exception(conn, e)
        finally:
            with self._lock:
                self._connections.discard(conn)
            conn.close()
            self.handler.client_disconnected(conn)
