"""Runtime configuration for the key issuance service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000
DEFAULT_SESSION_TTL_HOURS = 8


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Values that may differ between deployments."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    session_secret: Optional[str] = None
    database_path: Path = resolve_database_path(None)
    secure_cookies: bool = False
    session_ttl_hours: int = DEFAULT_SESSION_TTL_HOURS

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)

    @staticmethod
    def from_dict(data: Dict[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from a parsed configuration mapping."""

        settings = Settings()
        if "host" in data:
            settings = replace(settings, host=str(data["host"]))
        if "port" in data:
            settings = replace(settings, port=int(data["port"]))  # type: ignore[arg-type]
        if data.get("session_secret") is not None:
            settings = replace(settings, session_secret=str(data["session_secret"]))
        if data.get("database_path"):
            raw_path = Path(str(data["database_path"])).expanduser()
            if not raw_path.is_absolute() and base_path is not None:
                raw_path = base_path / raw_path
            settings = replace(settings, database_path=raw_path.resolve(strict=False))
        if "secure_cookies" in data:
            settings = replace(settings, secure_cookies=bool(data["secure_cookies"]))
        if "session_ttl_hours" in data:
            settings = replace(settings, session_ttl_hours=int(data["session_ttl_hours"]))  # type: ignore[arg-type]
        return settings


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "settings.yaml").resolve(strict=False)


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build settings from defaults, the YAML file and the environment, in that order."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("UWUNTU_CONFIG"))

    settings = Settings()
    if path.is_file():
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        settings = Settings.from_dict(raw, base_path=path.parent)

    if env.get("UWUNTU_HOST"):
        settings = replace(settings, host=env["UWUNTU_HOST"].strip())
    if env.get("UWUNTU_PORT"):
        settings = replace(settings, port=int(env["UWUNTU_PORT"]))
    if env.get("UWUNTU_SESSION_SECRET"):
        settings = replace(settings, session_secret=env["UWUNTU_SESSION_SECRET"])
    if env.get("UWUNTU_DB_PATH"):
        settings = replace(settings, database_path=resolve_database_path(env["UWUNTU_DB_PATH"]))
    if "UWUNTU_SESSION_SECURE" in env:
        settings = replace(settings, secure_cookies=_env_flag(env["UWUNTU_SESSION_SECURE"]))
    if env.get("UWUNTU_SESSION_TTL_HOURS"):
        settings = replace(settings, session_ttl_hours=int(env["UWUNTU_SESSION_TTL_HOURS"]))

    return settings


__all__ = ["Settings", "load_settings", "resolve_config_path"]
