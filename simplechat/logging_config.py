from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import ServerRuntimeConfig

_FALLBACK_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _parse_level(value: Any, default: int) -> int:
    """Accept a level name (any case, ``WARN`` included), a number, or nothing."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value

    text = str(value).strip().upper()
    if not text:
        return default
    if text.isdigit():
        return int(text)
    return logging.getLevelNamesMapping().get(text, default)


def _clean_optional_path(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value)
    return s if s.strip() else None


def _file_handler(path: str) -> logging.Handler:
    # Log files may contain login ids and chat text; keep them owner-only.
    p = Path(os.path.expanduser(path))
    p.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(p, encoding="utf-8")
    try:
        os.chmod(p, 0o600)
    except OSError:
        pass
    return handler


def configure_logging(
    cfg: ServerRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Install root handlers for the server process.

    ``override_level``/``override_file`` come from the command line and win
    over the config file; an empty ``override_file`` disables file logging.
    Calling this again replaces the handlers it installed before.
    """
    level = _parse_level(override_level or cfg.log_level, logging.INFO)

    if override_file is not None:
        log_file = _clean_optional_path(override_file)
    else:
        log_file = _clean_optional_path(cfg.log_file)

    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_file_handler(log_file))

    formatter = logging.Formatter(
        fmt=str(cfg.log_format).strip() or _FALLBACK_FORMAT,
        datefmt=_clean_optional_path(cfg.log_datefmt),
    )

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(level)

    logging.captureWarnings(True)
