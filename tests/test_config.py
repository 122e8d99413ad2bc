import logging

import pytest

from minichatd.cli import _build_arg_parser, build_config
from minichatd.config import ServerRuntimeConfig, apply_config_data, load_toml
from minichatd.logging_config import configure_logging, parse_level


def test_apply_config_tables(tmp_path) -> None:
    path = tmp_path / "minichatd.toml"
    path.write_text(
        """
[server]
listen_port = "4000"
default_group = "lobby"
idle_timeout_s = 30
config_path = "/ignored"

[reticulum]
enabled = true
configdir = ""
dest_name = "chat.test"

[logging]
level = "DEBUG"
file = ""
""",
        encoding="utf-8",
    )
    cfg = apply_config_data(ServerRuntimeConfig(), load_toml(str(path)))

    assert cfg.listen_port == 4000
    assert cfg.default_group == "lobby"
    assert cfg.idle_timeout_s == 30.0
    assert cfg.config_path is None
    assert cfg.enable_reticulum is True
    assert cfg.rns_configdir is None
    assert cfg.dest_name == "chat.test"
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file is None


def test_unknown_keys_are_ignored() -> None:
    cfg = ServerRuntimeConfig()
    assert apply_config_data(cfg, {"nonsense": 1}) == cfg


def test_default_group_must_be_a_single_token() -> None:
    with pytest.raises(ValueError):
        apply_config_data(ServerRuntimeConfig(), {"server": {"default_group": "two words"}})


def test_cli_flags_override_file() -> None:
    args = _build_arg_parser().parse_args(
        [
            "--config",
            "/tmp/x.toml",
            "--port",
            "5555",
            "--no-tcp",
            "--reticulum",
            "--no-announce",
            "--default-group",
            "hall",
            "--log-file",
            "",
        ]
    )
    cfg = build_config(args, {"server": {"listen_port": 4000}, "logging": {"file": "a.log"}})

    assert cfg.config_path == "/tmp/x.toml"
    assert cfg.listen_port == 5555
    assert cfg.enable_tcp is False
    assert cfg.enable_reticulum is True
    assert cfg.announce_on_start is False
    assert cfg.default_group == "hall"
    assert cfg.log_file is None


def test_configure_logging_writes_file(tmp_path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    log_path = tmp_path / "logs" / "minichatd.log"
    try:
        configure_logging(
            ServerRuntimeConfig(log_console=False, log_level="WARNING"),
            override_file=str(log_path),
        )
        assert root.level == logging.WARNING
        logging.getLogger("minichatd.test").warning("hello file")
        for h in root.handlers:
            h.flush()
        assert "hello file" in log_path.read_text(encoding="utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)


def test_parse_level() -> None:
    assert parse_level("debug", logging.INFO) == logging.DEBUG
    assert parse_level("warn", logging.INFO) == logging.WARNING
    assert parse_level("15", logging.INFO) == 15
    assert parse_level("", logging.INFO) == logging.INFO
    assert parse_level("loud", logging.ERROR) == logging.ERROR
