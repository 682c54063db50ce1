"""Chat client: connects, logs in, and relays console input to the server."""

from __future__ import annotations

import logging
import socket
import sys
import threading
from collections.abc import Callable
from typing import TextIO

from .constants import (
    CLIENT_GETHOST,
    CLIENT_GETPORT,
    CLIENT_LOGIN,
    CLIENT_LOGOFF,
    CLIENT_QUIT,
    CLIENT_SETHOST,
    CLIENT_SETPORT,
    CMD_LOGIN,
    CMD_PREFIX,
    LINE_TERMINATOR,
    OP_PORT_NOT_NUMBER,
    OP_UNKNOWN,
)
from .util import split_command


class ChatClient:
    """
    One client connection to a chat server.

    This class is responsible for:
    - Opening the connection and sending ``#login <id>`` right after
    - Displaying every line the server sends
    - Client-side ``#`` commands (quit, logoff, host/port changes, reconnect)

    ``finished`` is set when the client should exit: after ``#quit`` or when
    the server drops a connection the user did not close.
    """

    def __init__(
        self,
        login_id: str,
        host: str,
        port: int,
        *,
        display: Callable[[str], None],
        encoding: str = "utf-8",
    ) -> None:
        self.login_id = login_id
        self.host = host
        self.port = port
        self.display = display
        self.encoding = encoding
        self.log = logging.getLogger("simplechat.client")

        self.finished = threading.Event()
        self._lock = threading.Lock()
        self._sock: socket.socket | None = None
        self._reader: threading.Thread | None = None

    def is_connected(self) -> bool:
        with self._lock:
            return self._sock is not None

    def open_connection(self) -> None:
        """Connect and log in. Raises OSError if the server is unreachable."""
        with self._lock:
            if self._sock is not None:
                return
            sock = socket.create_connection((self.host, self.port))
            self._sock = sock
            self._reader = threading.Thread(
                target=self._read_loop,
                args=(sock,),
                name="simplechat-client-reader",
                daemon=True,
            )
            self._reader.start()
        self.log.info("Connected to %s:%s", self.host, self.port)
        self.connection_established()

    def close_connection(self) -> None:
        with self._lock:
            sock = self._sock
            self._sock = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    def send_to_server(self, text: str) -> None:
        with self._lock:
            sock = self._sock
        if sock is None:
            raise ConnectionError("not connected")
        sock.sendall((text + LINE_TERMINATOR).encode(self.encoding, "replace"))

    def connection_established(self) -> None:
        try:
            self.send_to_server(f"{CMD_LOGIN} {self.login_id}")
            self.display(f"Sent login command to server: {CMD_LOGIN} {self.login_id}")
        except OSError as e:
            self.display(f"Error sending login command?: {e}")

    def connection_closed(self, *, manual: bool = False) -> None:
        if not manual:
            self.display("Connection closed. Exiting client.")
            self.finished.set()

    def connection_exception(self, exc: Exception, *, manual: bool = False) -> None:
        if not manual:
            self.display(f"Connection error: {exc}; Exiting client.")
            self.finished.set()

    def handle_message_from_server(self, line: str) -> None:
        self.display(line)

    def handle_message_from_ui(self, message: str) -> None:
        if message.startswith(CMD_PREFIX):
            self.handle_command(message)
            return
        try:
            self.send_to_server(message)
        except OSError:
            self.display("Could not send message to server.  Terminating client.")
            self.quit()

    def handle_command(self, cmdline: str) -> None:
        cmd, arg = split_command(cmdline)
        cmd = cmd.lower()

        if cmd == CLIENT_QUIT:
            self.quit()
        elif cmd == CLIENT_LOGOFF:
            if self.is_connected():
                self.close_connection()
                self.display("Logged off.")
            else:
                self.display("Already logged off.")
        elif cmd == CLIENT_SETHOST:
            if self.is_connected():
                self.display("Error: must log off first.")
            elif arg is None or not arg.strip():
                self.display("Usage: #sethost <host>")
            else:
                self.host = arg.strip()
                self.display(f"Host set to: {self.host}")
        elif cmd == CLIENT_SETPORT:
            if self.is_connected():
                self.display("Error: must log off first.")
            elif arg is None or not arg.strip():
                self.display("Usage: #setport <port>")
            else:
                try:
                    self.port = int(arg.strip())
                except ValueError:
                    self.display(OP_PORT_NOT_NUMBER)
                else:
                    self.display(f"Port set to: {self.port}")
        elif cmd == CLIENT_LOGIN:
            if self.is_connected():
                self.display("Already connected.")
            else:
                try:
                    self.open_connection()
                except OSError as e:
                    self.display(f"Error opening connection: {e}")
                else:
                    self.display(f"Logged in to {self.host}:{self.port}")
        elif cmd == CLIENT_GETHOST:
            self.display(f"Host: {self.host}")
        elif cmd == CLIENT_GETPORT:
            self.display(f"Port: {self.port}")
        else:
            self.display(OP_UNKNOWN)

    def quit(self) -> None:
        self.close_connection()
        self.finished.set()

    def _release(self, sock: socket.socket) -> bool:
        """Forget ``sock`` if it is still current.

        Returns True when the socket had already been closed locally
        (``#logoff``/``#quit``), False when the server dropped it.
        """
        with self._lock:
            if self._sock is sock:
                self._sock = None
                manual = False
            else:
                manual = True
        try:
            sock.close()
        except OSError:
            pass
        return manual

    def _read_loop(self, sock: socket.socket) -> None:
        f = sock.makefile("rb")
        try:
            for raw in f:
                self.handle_message_from_server(
                    raw.decode(self.encoding, "replace").rstrip("\r\n")
                )
        except OSError as e:
            self.connection_exception(e, manual=self._release(sock))
            return
        finally:
            f.close()

        self.connection_closed(manual=self._release(sock))


class ClientConsole:
    """Reads user input and displays server output for a :class:`ChatClient`."""

    def __init__(
        self,
        login_id: str,
        host: str,
        port: int,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self._write_lock = threading.Lock()
        self.client = ChatClient(login_id, host, port, display=self.display)

    def display(self, message: str) -> None:
        with self._write_lock:
            print(f"> {message}", file=self.stdout, flush=True)

    def accept(self) -> None:
        """Feed input lines to the client until it finishes or input ends."""
        try:
            for raw in self.stdin:
                self.client.handle_message_from_ui(raw.rstrip("\r\n"))
                if self.client.finished.is_set():
                    return
        except OSError:
            self.display("Unexpected error while reading from console!")
        self.client.quit()

    def run(self) -> int:
        """Connect, then pump input on a daemon thread until the client finishes."""
        try:
            self.client.open_connection()
        except OSError:
            self.display("Error: Can't setup connection! Terminating client.")
            return 1

        threading.Thread(
            target=self.accept, name="simplechat-client-console", daemon=True
        ).start()
        self.client.finished.wait()
        return 0
