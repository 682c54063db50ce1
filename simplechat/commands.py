"""Command handling for operator console commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .constants import (
    ADMIN_CLOSE,
    ADMIN_GETPORT,
    ADMIN_QUIT,
    ADMIN_SETPORT,
    ADMIN_START,
    ADMIN_STATS,
    ADMIN_STOP,
    OP_UNKNOWN,
)

if TYPE_CHECKING:
    from .service import ChatServer


@dataclass(frozen=True)
class AdminCommand:
    name: str
    args: tuple[str, ...] = ()

    @property
    def first_arg(self) -> str | None:
        return self.args[0] if self.args else None


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one console line: text for the operator, and whether to exit."""

    messages: tuple[str, ...] = ()
    quit: bool = False


def parse_admin_command(text: str) -> AdminCommand:
    """Parse one console line into a command name (lower-cased) and arguments."""
    parts = text.split()
    if not parts:
        return AdminCommand(name="")
    return AdminCommand(name=parts[0].lower(), args=tuple(parts[1:]))


class CommandHandler:
    """Dispatches operator commands to the server control surface."""

    def __init__(self, server: ChatServer) -> None:
        self.server = server
        self.log = logging.getLogger("simplechat.control")

    def handle(self, text: str) -> CommandResult:
        cmd = parse_admin_command(text)
        control = self.server.control

        self.log.debug("Operator command %s args=%r", cmd.name, cmd.args)

        if cmd.name == ADMIN_QUIT:
            message = control.close()
            return CommandResult(messages=(message,) if message else (), quit=True)

        if cmd.name == ADMIN_STOP:
            return _result(control.stop())

        if cmd.name == ADMIN_CLOSE:
            return _result(control.close())

        if cmd.name == ADMIN_SETPORT:
            return _result(control.set_port(cmd.first_arg))

        if cmd.name == ADMIN_START:
            return _result(control.start())

        if cmd.name == ADMIN_GETPORT:
            return _result(control.report_port())

        if cmd.name == ADMIN_STATS:
            return _result(self.server.stats_manager.format_stats())

        return _result(OP_UNKNOWN)


def _result(message: str | None) -> CommandResult:
    if message is None:
        return CommandResult()
    return CommandResult(messages=(message,))
