from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, replace

from .constants import DEFAULT_GROUP


@dataclass(frozen=True)
class ServerRuntimeConfig:
    config_path: str | None = None
    listen_host: str = "0.0.0.0"
    listen_port: int = 12345
    enable_tcp: bool = True
    default_group: str = DEFAULT_GROUP
    username_max_chars: int = 32
    max_line_bytes: int = 8192
    outbound_queue_max: int = 256
    write_timeout_s: float = 10.0
    idle_timeout_s: float = 0.0
    enable_reticulum: bool = False
    rns_configdir: str | None = None
    identity_path: str | None = None
    dest_name: str = "minichat.server"
    announce_on_start: bool = True
    server_name: str = "minichat"
    log_level: str = "INFO"
    log_rns_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "rns_level": "log_rns_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_RETICULUM_KEYS = {
    "enabled": "enable_reticulum",
    "configdir": "rns_configdir",
    "identity_path": "identity_path",
    "dest_name": "dest_name",
    "announce_on_start": "announce_on_start",
}

_INT_KEYS = ("listen_port", "username_max_chars", "max_line_bytes", "outbound_queue_max")
_FLOAT_KEYS = ("write_timeout_s", "idle_timeout_s")
_OPTIONAL_STR_KEYS = ("rns_configdir", "identity_path", "log_file", "log_datefmt")


def load_toml(path: str) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _map_table(data: dict, table: str, mapping: dict[str, str]) -> dict:
    section = data.get(table)
    if not isinstance(section, dict):
        return data
    mapped = {dst: section[src] for src, dst in mapping.items() if src in section}
    return {**data, **mapped}


def apply_config_data(cfg: ServerRuntimeConfig, data: dict) -> ServerRuntimeConfig:
    """Overlay a parsed TOML document onto ``cfg``.

    Keys may sit at the top level or in the ``[server]`` table; ``[logging]``
    and ``[reticulum]`` use short key names. Unknown keys are ignored.
    """
    if not isinstance(data, dict):
        return cfg

    server = data.get("server")
    if isinstance(server, dict):
        data = {**data, **server}

    data = _map_table(data, "logging", _LOGGING_KEYS)
    data = _map_table(data, "reticulum", _RETICULUM_KEYS)

    allowed = set(asdict(cfg).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _INT_KEYS:
        if key in updates:
            updates[key] = int(updates[key])
    for key in _FLOAT_KEYS:
        if key in updates:
            updates[key] = float(updates[key])
    for key in _OPTIONAL_STR_KEYS:
        if key in updates and updates[key] == "":
            updates[key] = None

    if "default_group" in updates:
        name = str(updates["default_group"]).strip()
        if not name or any(ch.isspace() for ch in name):
            raise ValueError(f"invalid default_group {updates['default_group']!r}")
        updates["default_group"] = name

    return replace(cfg, **updates) if updates else cfg
