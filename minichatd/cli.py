from __future__ import annotations

import argparse
import os
import sys
import tomllib
from dataclasses import replace
from pathlib import Path

from .config import ServerRuntimeConfig, apply_config_data, load_toml
from .logging_config import configure_logging
from .paths import default_config_path, default_identity_path, ensure_private_dir
from .service import ChatService


def _write_default_config(config_path: str, identity_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    content = f"""# minichatd configuration (TOML)
#
# This file was created on first run.
# Edit it, then start minichatd again.

[server]

# TCP listener. Clients speak the newline-delimited text protocol.
enable_tcp = true
listen_host = "0.0.0.0"
listen_port = 12345

# Name of the lobby every user joins on login. Plain (non-command) lines
# go here. Users in any other group neither send to nor receive from it.
default_group = "defaultGroup"

# Username policy. Names must be a single token. 0 disables length limiting.
username_max_chars = 32

# Limits.
#
# max_line_bytes: longest accepted input line; longer lines drop the client.
# outbound_queue_max: lines buffered per client before new lines are dropped.
# write_timeout_s: a client that cannot take a line within this many seconds
#   is disconnected (0 disables).
# idle_timeout_s: disconnect clients silent for this long (0 disables).
max_line_bytes = 8192
outbound_queue_max = 256
write_timeout_s = 10.0
idle_timeout_s = 0.0

# Name advertised in Reticulum announces.
server_name = "minichat"

[reticulum]

# Also accept clients over Reticulum links.
enabled = false

# Optional: Reticulum configuration directory.
# If left unset, Reticulum will choose its default (usually ~/.reticulum).
configdir = ""

# Where minichatd stores its Reticulum identity (created if missing).
identity_path = {identity_path!r}

# Destination name to host the server on.
dest_name = "minichat.server"
announce_on_start = true

[logging]

# Log level for minichatd itself.
level = "INFO"

# Log level for Reticulum/RNS Python logging (if used by your install).
rns_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="minichatd", description="Run a MiniChat server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="TCP listen address")
    p.add_argument("--port", type=int, default=None, help="TCP listen port")
    p.add_argument("--no-tcp", action="store_true", help="Disable the TCP listener")

    p.add_argument(
        "--reticulum", action="store_true", help="Accept clients over Reticulum links"
    )
    p.add_argument("--rns-configdir", default=None, help="Reticulum config directory")
    p.add_argument(
        "--identity",
        default=None,
        help="Path to the server's Reticulum identity file (created if missing)",
    )
    p.add_argument(
        "--dest-name", default=None, help="Destination app name (default: minichat.server)"
    )
    p.add_argument(
        "--no-announce", action="store_true", help="Disable announce on start"
    )

    p.add_argument(
        "--default-group", default=None, help="Name of the default group (lobby)"
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


def build_config(args: argparse.Namespace, data: dict | None = None) -> ServerRuntimeConfig:
    """Combine defaults, a parsed config file and command-line overrides."""
    cfg = ServerRuntimeConfig(identity_path=str(default_identity_path()))
    if data:
        cfg = apply_config_data(cfg, data)
    cfg = replace(cfg, config_path=str(args.config))

    if args.host is not None:
        cfg = replace(cfg, listen_host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, listen_port=int(args.port))
    if args.no_tcp:
        cfg = replace(cfg, enable_tcp=False)

    if args.reticulum:
        cfg = replace(cfg, enable_reticulum=True)
    if args.rns_configdir is not None:
        cfg = replace(cfg, rns_configdir=args.rns_configdir or None)
    if args.identity is not None:
        cfg = replace(cfg, identity_path=str(args.identity))
    if args.dest_name is not None:
        cfg = replace(cfg, dest_name=args.dest_name)
    if args.no_announce:
        cfg = replace(cfg, announce_on_start=False)

    if args.default_group is not None:
        cfg = apply_config_data(cfg, {"default_group": args.default_group})

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if not os.path.exists(config_path):
        _write_default_config(config_path, str(default_identity_path()))
        print(
            "Created default minichatd config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run minichatd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    try:
        data = load_toml(config_path)
        cfg = build_config(args, data)
    except (OSError, tomllib.TOMLDecodeError, ValueError, TypeError) as e:
        print(f"minichatd: bad configuration in {config_path}: {e}", file=sys.stderr)
        raise SystemExit(2) from e

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = ChatService(cfg)
    try:
        svc.start()
    except (OSError, RuntimeError, ValueError) as e:
        print(f"minichatd: failed to start: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    svc.run_forever()


if __name__ == "__main__":
    main()
