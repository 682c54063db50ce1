"""Operator console: reads stdin, prints notifications."""

from __future__ import annotations

import logging
import sys
import threading
from typing import TYPE_CHECKING, TextIO

from .events import NotificationEvent, describe

if TYPE_CHECKING:
    from .service import ChatServer


class ServerConsole:
    """Line-based operator console attached to a :class:`ChatServer`.

    ``#``-prefixed lines are admin commands; anything else is broadcast to
    every client as ``SERVER msg> <text>``. The console subscribes to the
    server's events and prints each as ``> <description>``.
    """

    def __init__(
        self,
        server: ChatServer,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.server = server
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.log = logging.getLogger("simplechat.console")
        self._write_lock = threading.Lock()
        self._unsubscribe = server.events.subscribe(self.update)

    def display(self, message: str) -> None:
        with self._write_lock:
            print(f"> {message}", file=self.stdout, flush=True)

    def update(self, event: NotificationEvent) -> None:
        self.display(describe(event))

    def accept(self) -> bool:
        """Read console lines until ``#quit`` or end of input.

        Returns True when the operator asked to quit.
        """
        try:
            for raw in self.stdin:
                line = raw.rstrip("\r\n")
                result = self.server.submit(line)
                for message in result.messages:
                    self.display(message)
                if result.quit:
                    return True
        except OSError as e:
            self.log.error("Console read failed: %s", e)
            self.display("Unexpected I/O error")
        finally:
            self._unsubscribe()
        return False

    def start(self) -> threading.Thread:
        """Run :meth:`accept` on a daemon thread."""
        thread = threading.Thread(
            target=self.accept, name="simplechat-console", daemon=True
        )
        thread.start()
        return thread
