from __future__ import annotations

import os

from .constants import PORT_MAX, PORT_MIN


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def split_command(line: str) -> tuple[str, str | None]:
    """Split ``line`` into its first word and the rest.

    Only the first whitespace run is consumed as the separator, so the
    remainder keeps any inner whitespace. The remainder is ``None`` when the
    line holds a single word.
    """
    parts = line.split(None, 1)
    if not parts:
        return "", None
    if len(parts) == 1:
        return parts[0], None
    return parts[0], parts[1]


class PortRangeError(ValueError):
    """An integer port outside 0..65535."""


def parse_port(value: str) -> int:
    """Parse a TCP port number.

    Raises ValueError when the text is not an integer, and its subclass
    PortRangeError when the integer is out of range.
    """
    port = int(value.strip())
    if port < PORT_MIN or port > PORT_MAX:
        raise PortRangeError(f"port out of range: {port}")
    return port
