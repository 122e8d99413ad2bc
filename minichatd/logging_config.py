from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import ServerRuntimeConfig

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_level(value: Any, default: int) -> int:
    """Accept a level name (``"warn"`` too), a number, or a numeric string."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if not text:
        return default
    if text == "WARN":
        text = "WARNING"

    level = logging.getLevelNamesMapping().get(text)
    if level is not None:
        return level

    try:
        return int(text)
    except ValueError:
        return default


def _clean_optional(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value)
    return s if s.strip() else None


def _file_handler(path: str) -> logging.Handler:
    p = Path(os.path.expanduser(path))
    p.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(p, encoding="utf-8")
    try:
        # Chat logs carry usernames and group names.
        os.chmod(p, 0o600)
    except OSError:
        pass
    return handler


def build_handlers(
    cfg: ServerRuntimeConfig, *, override_file: str | None = None
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    log_file = _clean_optional(override_file) if override_file is not None else None
    if log_file is None and override_file is None:
        log_file = _clean_optional(cfg.log_file)
    if log_file:
        handlers.append(_file_handler(log_file))

    formatter = logging.Formatter(
        fmt=_clean_optional(cfg.log_format) or DEFAULT_FORMAT,
        datefmt=_clean_optional(cfg.log_datefmt),
    )
    for h in handlers:
        h.setFormatter(formatter)
    return handlers


def configure_logging(
    cfg: ServerRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Install minichatd's handlers on the root logger.

    Replaces whatever root handlers were installed before. An empty
    ``override_file`` disables file logging even if the config names a file.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    for h in build_handlers(cfg, override_file=override_file):
        root.addHandler(h)

    root.setLevel(parse_level(override_level or cfg.log_level, logging.INFO))
    logging.getLogger("RNS").setLevel(parse_level(cfg.log_rns_level, logging.WARNING))

    logging.captureWarnings(True)
