"""Notification events and the observer sink that fans them out."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum


class EventKind(str, Enum):
    CLIENT_CONNECTED = "client-connected"
    CLIENT_DISCONNECTED = "client-disconnected"
    LOGIN_SUCCEEDED = "login-succeeded"
    LOGIN_REJECTED = "login-rejected"
    MESSAGE_RELAYED = "message-relayed"
    SERVER_STARTED = "server-started"
    SERVER_STOPPED = "server-stopped"
    SERVER_CLOSED = "server-closed"
    LISTENING_EXCEPTION = "listening-exception"
    CLIENT_EXCEPTION = "client-exception"


@dataclass(frozen=True)
class NotificationEvent:
    kind: EventKind
    connection: str | None = None
    login_id: str | None = None
    text: str | None = None
    port: int | None = None
    error: str | None = None
    ts: float = field(default_factory=time.time)


Observer = Callable[[NotificationEvent], None]


def describe(event: NotificationEvent) -> str:
    """Render ``event`` as a one-line human-readable string."""
    kind = event.kind
    conn = event.connection or "-"

    if kind is EventKind.CLIENT_CONNECTED:
        return f"Client connected: {conn}"
    if kind is EventKind.CLIENT_DISCONNECTED:
        if event.login_id:
            return f"Client disconnected: {conn} ({event.login_id})"
        return f"Client disconnected: {conn}"
    if kind is EventKind.LOGIN_SUCCEEDED:
        return f"Client logged in with ID: {event.login_id}"
    if kind is EventKind.LOGIN_REJECTED:
        return f"Login rejected for {conn}: {event.text}"
    if kind is EventKind.MESSAGE_RELAYED:
        return f"Message received from {event.login_id}: {event.text}"
    if kind is EventKind.SERVER_STARTED:
        return f"Server listening for connections on port {event.port}"
    if kind is EventKind.SERVER_STOPPED:
        return "Server has stopped listening for connections."
    if kind is EventKind.SERVER_CLOSED:
        return "Server has closed."
    if kind is EventKind.LISTENING_EXCEPTION:
        return f"Error while listening for connections: {event.error}"
    if kind is EventKind.CLIENT_EXCEPTION:
        return f"Error with client {conn}: {event.error}"
    return f"{kind.value}: {event}"


class EventSink:
    """
    Forwards notification events to every subscribed observer.

    - Every event goes to every observer exactly once, with no filtering.
    - Emission is serialized, so all observers see the same order.
    - An observer that raises is logged and skipped; the others still
      receive the event.
    """

    def __init__(self) -> None:
        self.log = logging.getLogger("simplechat.events")
        self._lock = threading.RLock()
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer`` and return a callable that unregisters it."""
        with self._lock:
            self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def notify(self, event: NotificationEvent) -> None:
        with self._lock:
            observers = list(self._observers)
            for observer in observers:
                try:
                    observer(event)
                except Exception:
                    self.log.exception(
                        "Observer %r failed handling %s", observer, event.kind.value
                    )

    def emit(self, kind: EventKind, **fields) -> NotificationEvent:
        event = NotificationEvent(kind, **fields)
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug("Event %s", describe(event))
        self.notify(event)
        return event
