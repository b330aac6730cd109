from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

import pytest

from noticeboard.config import Settings, load_settings, resolve_config_path


def test_yaml_settings_are_loaded(tmp_path: Path) -> None:
    config = tmp_path / "noticeboard.yaml"
    config.write_text(
        "database_path: data/board.sqlite3\n"
        "jwt_secret: yaml-secret\n"
        "token_ttl: 600\n"
        "api_prefix: v1/\n"
        "port: 8080\n"
        "trusted_proxies: [10.0.0.1, 10.0.0.2]\n",
        encoding="utf-8",
    )

    settings = load_settings(config, environ={})

    assert settings.database_path == (tmp_path / "data" / "board.sqlite3").resolve()
    assert settings.jwt_secret == "yaml-secret"
    assert settings.token_ttl == timedelta(minutes=10)
    assert settings.api_prefix == "/v1"
    assert settings.port == 8080
    assert settings.trusted_proxies == ("10.0.0.1", "10.0.0.2")


def test_environment_overrides_yaml(tmp_path: Path) -> None:
    config = tmp_path / "noticeboard.yaml"
    config.write_text("jwt_secret: yaml-secret\nport: 8080\n", encoding="utf-8")
    db_path = tmp_path / "env.sqlite3"

    settings = load_settings(
        config,
        environ={
            "NOTICEBOARD_JWT_SECRET": "env-secret",
            "NOTICEBOARD_PORT": "9090",
            "NOTICEBOARD_DB_PATH": str(db_path),
            "NOTICEBOARD_TRUSTED_PROXIES": "127.0.0.1, ::1",
        },
    )

    assert settings.jwt_secret == "env-secret"
    assert settings.port == 9090
    assert settings.database_path == db_path.resolve()
    assert settings.trusted_proxies == ("127.0.0.1", "::1")


def test_defaults_without_config_file(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="noticeboard.config"):
        settings = load_settings(tmp_path / "absent.yaml", environ={})

    assert settings.token_ttl == timedelta(hours=1)
    assert settings.api_prefix == "/api"
    assert len(settings.jwt_secret) >= 32
    assert "No JWT secret configured" in caplog.text


def test_invalid_values_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        Settings.from_dict({"jwt_secret": "s", "token_ttl": 0})
    with pytest.raises(ValueError):
        Settings.from_dict({"jwt_secret": "s", "port": 70000})

    config = tmp_path / "list.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(config, environ={})


def test_empty_prefix_mounts_at_root() -> None:
    assert Settings.from_dict({"jwt_secret": "s", "api_prefix": "/"}).api_prefix == ""


def test_resolve_config_path(tmp_path: Path) -> None:
    explicit = tmp_path / "custom.yaml"
    assert resolve_config_path(str(explicit)) == explicit.resolve()
    assert resolve_config_path(None).name == "noticeboard.yaml"
