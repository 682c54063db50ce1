from __future__ import annotations

import os
from dataclasses import asdict, dataclass, replace

from .constants import DEFAULT_BIND_HOST, DEFAULT_PORT, MAX_LINE_BYTES


@dataclass(frozen=True)
class ServerRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_BIND_HOST
    port: int = DEFAULT_PORT
    backlog: int = 10
    encoding: str = "utf-8"
    max_line_bytes: int = MAX_LINE_BYTES
    persist_port: bool = False
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


def load_toml(path: str) -> dict:
    import tomllib

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"invalid config file {path}: {e}") from e
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ServerRuntimeConfig, data: dict) -> ServerRuntimeConfig:
    """Overlay values from a parsed TOML document onto ``base``.

    Keys may live at the top level or in a ``[server]`` table. The
    ``[logging]`` table maps ``level``, ``console``, ``file``, ``format`` and
    ``datefmt`` onto the ``log_*`` fields. Unknown keys are ignored.
    """
    server = data.get("server") if isinstance(data, dict) else None
    if isinstance(server, dict):
        data = {**data, **server}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for key in ("level", "console", "file", "format", "datefmt"):
            if key in log_table:
                mapped[f"log_{key}"] = log_table.get(key)
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where to persist to; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    if "port" in updates:
        try:
            updates["port"] = int(updates["port"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"port must be an integer, got {updates['port']!r}") from e
    for key in ("backlog", "max_line_bytes"):
        if key in updates:
            updates[key] = int(updates[key])
    for flag in ("persist_port", "log_console"):
        if flag in updates:
            updates[flag] = bool(updates[flag])
    if "log_file" in updates and updates["log_file"] == "":
        updates["log_file"] = None
    if "log_datefmt" in updates and updates["log_datefmt"] == "":
        updates["log_datefmt"] = None

    return replace(base, **updates) if updates else base


def load_config(path: str, base: ServerRuntimeConfig | None = None) -> ServerRuntimeConfig:
    cfg = base if base is not None else ServerRuntimeConfig()
    cfg = replace(cfg, config_path=path)
    return apply_config_data(cfg, load_toml(path))


def persist_port(path: str, port: int) -> None:
    """Write ``port`` into the ``[server]`` table of the TOML file at ``path``.

    Comments and layout of the existing file are kept.
    """
    from tomlkit import dumps, parse, table

    st = None
    try:
        st = os.stat(path)
    except OSError:
        st = None

    with open(path, encoding="utf-8") as f:
        doc = parse(f.read())

    server = doc.get("server")
    if server is None:
        server = table()
        doc["server"] = server
    server["port"] = int(port)

    new_text = dumps(doc)
    with open(path, "w", encoding="utf-8") as f:
        f.write(new_text)

    if st is not None:
        try:
            os.chmod(path, st.st_mode)
        except OSError:
            pass
