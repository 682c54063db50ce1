from __future__ import annotations

import threading

import pytest

from simplechat.config import ServerRuntimeConfig
from simplechat.events import NotificationEvent
from simplechat.service import ChatServer
from simplechat.transport import TransportError


class FakeConnection:
    """In-memory stand-in for a transport connection."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.sent: list[str] = []
        self.closed = False
        self.fail_send = False
        self.fail_close = False
        self._lock = threading.Lock()

    def send(self, text: str) -> int:
        if self.fail_send or self.closed:
            raise ConnectionResetError(f"{self.name} is gone")
        with self._lock:
            self.sent.append(text)
        return len(text) + 1

    def __str__(self) -> str:
        return self.name


class FakeTransport:
    """Implements the transport surface ChatServer uses, without sockets."""

    def __init__(self) -> None:
        self.handler: ChatServer | None = None
        self.listening = False
        self.fail_listen = False
        self.listen_calls: list[int] = []
        self.live: list[FakeConnection] = []

    def is_listening(self) -> bool:
        return self.listening

    def connections(self) -> list[FakeConnection]:
        return list(self.live)

    def listen(self, port: int) -> int:
        self.listen_calls.append(port)
        if self.fail_listen:
            raise TransportError(f"could not listen on port {port}")
        self.listening = True
        self.handler.listening_started(port)
        return port

    def stop_listening(self) -> bool:
        if not self.listening:
            return False
        self.listening = False
        self.handler.listening_stopped()
        return True

    def close(self) -> None:
        self.stop_listening()
        first_error = None
        for conn in list(self.live):
            try:
                self.close_connection(conn)
            except OSError as e:
                first_error = first_error or e
        if first_error is not None:
            raise first_error

    def close_connection(self, conn: FakeConnection) -> None:
        if conn.fail_close:
            raise OSError("close failed")
        if conn.closed:
            return
        conn.closed = True
        if conn in self.live:
            self.live.remove(conn)
        self.handler.client_disconnected(conn)

    def send_to(self, conn: FakeConnection, text: str) -> int:
        return conn.send(text)

    def send_to_all(self, text, recipients=None):
        targets = list(recipients) if recipients is not None else self.connections()
        failures = []
        for conn in targets:
            try:
                self.send_to(conn, text)
            except OSError as e:
                failures.append((conn, e))
        return failures

    # Test helpers

    def connect(self, name: str) -> FakeConnection:
        conn = FakeConnection(name)
        self.live.append(conn)
        self.handler.client_connected(conn)
        return conn

    def say(self, conn: FakeConnection, line: str) -> None:
        self.handler.message_received(conn, line)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def server(transport: FakeTransport) -> ChatServer:
    srv = ChatServer(ServerRuntimeConfig(port=5555), transport=transport)
    transport.handler = srv
    return srv


@pytest.fixture
def events(server: ChatServer) -> list[NotificationEvent]:
    seen: list[NotificationEvent] = []
    server.events.subscribe(seen.append)
    return seen
