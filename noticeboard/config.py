"""Configuration management for the noticeboard service."""
from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import yaml

from .database import resolve_database_path

logger = logging.getLogger("noticeboard.config")

_ENV_PREFIX = "NOTICEBOARD_"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service."""

    database_path: Path
    jwt_secret: str
    token_ttl: timedelta = timedelta(hours=1)
    api_prefix: str = "/api"
    host: str = "0.0.0.0"
    port: int = 5000
    trusted_proxies: tuple[str, ...] = ()

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw mapping data (YAML or environment)."""

        raw_db = data.get("database_path")
        if raw_db:
            db_path = Path(str(raw_db)).expanduser()
            if not db_path.is_absolute() and base_path is not None:
                db_path = base_path / db_path
            database_path = db_path.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = data.get("jwt_secret")
        if secret:
            jwt_secret = str(secret)
        else:
            logger.warning(
                "No JWT secret configured; generated a random one. Issued tokens will not"
                " survive a restart. Set NOTICEBOARD_JWT_SECRET for stable tokens."
            )
            jwt_secret = secrets.token_urlsafe(48)

        ttl_seconds = int(data.get("token_ttl", 3600))
        if ttl_seconds <= 0:
            raise ValueError("token_ttl must be a positive number of seconds")

        port = int(data.get("port", 5000))
        if not 1 <= port <= 65535:
            raise ValueError(f"Invalid port: {port}")

        return Settings(
            database_path=database_path,
            jwt_secret=jwt_secret,
            token_ttl=timedelta(seconds=ttl_seconds),
            api_prefix=_normalize_prefix(str(data.get("api_prefix", "/api"))),
            host=str(data.get("host", "0.0.0.0")),
            port=port,
            trusted_proxies=tuple(_split_list(data.get("trusted_proxies"))),
        )


def _normalize_prefix(value: str) -> str:
    stripped = value.strip().strip("/")
    return f"/{stripped}" if stripped else ""


def _split_list(value: object) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ValueError("trusted_proxies must be a list or a comma separated string")
    return [item.strip() for item in items if item.strip()]


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    keys = {
        "DB_PATH": "database_path",
        "JWT_SECRET": "jwt_secret",
        "TOKEN_TTL": "token_ttl",
        "API_PREFIX": "api_prefix",
        "HOST": "host",
        "PORT": "port",
        "TRUSTED_PROXIES": "trusted_proxies",
    }
    overrides: Dict[str, object] = {}
    for suffix, key in keys.items():
        value = environ.get(_ENV_PREFIX + suffix)
        if value is None or not value.strip():
            continue
        if key == "database_path":
            overrides[key] = str(resolve_database_path(value.strip()))
        else:
            overrides[key] = value.strip()
    return overrides


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "noticeboard.yaml").resolve(strict=False)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when present) overlaid by environment variables."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get(_ENV_PREFIX + "CONFIG"))

    raw: Dict[str, object] = {}
    base_path: Path | None = None
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        raw.update(loaded)
        base_path = path.parent

    raw.update(_env_overrides(env))
    return Settings.from_dict(raw, base_path=base_path)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
