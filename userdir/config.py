"""Configuration management for the user directory service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

DEFAULT_PAGE_SIZE = 30
DEFAULT_SESSION_TTL_HOURS = 8.0


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_path(raw: str, base_path: Path | None) -> Path:
    candidate = Path(raw).expanduser()
    if candidate.is_absolute() or base_path is None:
        return candidate.resolve(strict=False)
    return (base_path / candidate).resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the directory service."""

    database_path: Path
    session_secret: Optional[str] = None
    session_ttl: timedelta = timedelta(hours=DEFAULT_SESSION_TTL_HOURS)
    page_size: int = DEFAULT_PAGE_SIZE
    secure_cookies: bool = False

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        unknown = set(data) - {
            "database_path",
            "session_secret",
            "session_ttl_hours",
            "page_size",
            "secure_cookies",
        }
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_db_path = data.get("database_path")
        if raw_db_path:
            database_path = _resolve_path(str(raw_db_path), base_path)
        else:
            database_path = resolve_database_path(None)

        page_size = int(data.get("page_size", DEFAULT_PAGE_SIZE))
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        ttl_hours = float(data.get("session_ttl_hours", DEFAULT_SESSION_TTL_HOURS))
        if ttl_hours <= 0:
            raise ValueError("session_ttl_hours must be positive")

        secret = data.get("session_secret")
        return Settings(
            database_path=database_path,
            session_secret=str(secret) if secret else None,
            session_ttl=timedelta(hours=ttl_hours),
            page_size=page_size,
            secure_cookies=bool(data.get("secure_cookies", False)),
        )

    def with_env_overrides(self, environ: Mapping[str, str]) -> "Settings":
        """Return a copy with ``USERDIR_*`` environment variables applied."""
        overrides: Dict[str, object] = {}
        if environ.get("USERDIR_DB_PATH"):
            overrides["database_path"] = resolve_database_path(environ["USERDIR_DB_PATH"])
        if environ.get("USERDIR_SESSION_SECRET"):
            overrides["session_secret"] = environ["USERDIR_SESSION_SECRET"]
        if environ.get("USERDIR_SESSION_TTL_HOURS"):
            hours = float(environ["USERDIR_SESSION_TTL_HOURS"])
            if hours <= 0:
                raise ValueError("USERDIR_SESSION_TTL_HOURS must be positive")
            overrides["session_ttl"] = timedelta(hours=hours)
        if environ.get("USERDIR_PAGE_SIZE"):
            page_size = int(environ["USERDIR_PAGE_SIZE"])
            if page_size < 1:
                raise ValueError("USERDIR_PAGE_SIZE must be at least 1")
            overrides["page_size"] = page_size
        if "USERDIR_SESSION_SECURE" in environ:
            overrides["secure_cookies"] = _env_flag(environ.get("USERDIR_SESSION_SECURE"))
        return replace(self, **overrides) if overrides else self


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "userdir.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML (when present) and apply environment overrides."""
    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("USERDIR_CONFIG"))

    raw: Mapping[str, object] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"Configuration file {path} must contain a mapping")

    settings = Settings.from_dict(raw, base_path=path.parent)
    return settings.with_env_overrides(env)


__all__ = ["Settings", "load_settings", "resolve_config_path"]
