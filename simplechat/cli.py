from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

from .client import ClientConsole
from .config import ServerRuntimeConfig, load_config
from .console import ServerConsole
from .constants import DEFAULT_HOST, DEFAULT_PORT, MAX_LINE_BYTES, OP_COULD_NOT_LISTEN
from .logging_config import configure_logging
from .paths import default_config_path, ensure_private_dir
from .service import ChatServer
from .util import parse_port


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    content = f"""# simplechat server configuration (TOML)
#
# This file was created on first run. Command line flags override it.

[server]

# Interface to bind. Use "127.0.0.1" to accept local clients only.
host = "0.0.0.0"

# TCP port to listen on. The operator console can change it with #setport
# while the server is stopped.
port = {DEFAULT_PORT}

# Listen backlog and wire encoding.
backlog = 10
encoding = "utf-8"

# Clients sending a longer line (in bytes) are disconnected.
max_line_bytes = {MAX_LINE_BYTES}

# Write the port chosen with #setport back into this file.
persist_port = false

[logging]

# Log level for simplechat itself.
level = "INFO"

# Log to stderr.
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


def _port_arg(value: str) -> int:
    try:
        return parse_port(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="simplechat-server", description="Run a simplechat relay server"
    )

    p.add_argument(
        "port",
        nargs="?",
        type=_port_arg,
        default=None,
        help=f"Port to listen on (default: from config, else {DEFAULT_PORT})",
    )
    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument(
        "--no-config",
        action="store_true",
        help="Ignore the config file and use built-in defaults",
    )
    p.add_argument("--host", default=None, help="Interface to bind")
    p.add_argument(
        "--persist-port",
        action="store_true",
        help="Save the port set with #setport back to the config file",
    )
    p.add_argument(
        "--no-console",
        action="store_true",
        help="Do not read operator commands from stdin",
    )
    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def _build_client_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="simplechat-client", description="Connect to a simplechat server"
    )
    p.add_argument("login_id", help="Login id sent with #login on connect")
    p.add_argument("host", nargs="?", default=DEFAULT_HOST, help="Server host")
    p.add_argument(
        "port", nargs="?", type=_port_arg, default=DEFAULT_PORT, help="Server port"
    )
    return p


def _load_server_config(args: argparse.Namespace) -> ServerRuntimeConfig:
    cfg = ServerRuntimeConfig()

    if not args.no_config:
        config_path = str(args.config)
        if not os.path.exists(config_path):
            _write_default_config(config_path)
            print(f"Created default simplechat config: {config_path}", file=sys.stderr)
        cfg = load_config(config_path, cfg)

    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.persist_port:
        cfg = replace(cfg, persist_port=True)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    try:
        cfg = _load_server_config(args)
    except (OSError, ValueError) as e:
        print(f"simplechat-server: {e}", file=sys.stderr)
        raise SystemExit(2) from e

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    server = ChatServer(cfg)
    console = None if args.no_console else ServerConsole(server)

    if server.start() is not None:
        if console is None:
            print(OP_COULD_NOT_LISTEN, file=sys.stderr)
            raise SystemExit(1)
        console.display(OP_COULD_NOT_LISTEN)

    if console is not None:
        console.start()

    try:
        server.run_forever()
    finally:
        server.stop()


def client_main(argv: list[str] | None = None) -> None:
    args = _build_client_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)
    console = ClientConsole(args.login_id, args.host, args.port)
    raise SystemExit(console.run())


if __name__ == "__main__":
    main()
