"""Configuration management for the address book service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

_ENV_PREFIX = "ADDRESSBOOK_"


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "addressbook.sqlite3").resolve(strict=False)


class MissingSecretError(ValueError):
    """Raised when no token signing secret is configured."""


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once at startup and passed explicitly."""

    database_path: Path
    token_secret: str
    database_timeout: float = 5.0
    token_algorithm: str = "HS256"
    token_ttl: timedelta = timedelta(hours=24)
    password_rounds: int = 10

    def __post_init__(self) -> None:
        if not self.token_secret:
            raise MissingSecretError("A token signing secret must be configured")
        if self.token_ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        if not 4 <= self.password_rounds <= 31:
            raise ValueError("Password rounds must be between 4 and 31")

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        raw_db_path = data.get("database_path")
        if raw_db_path:
            candidate = Path(str(raw_db_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        secret = data.get("token_secret")
        return Settings(
            database_path=database_path,
            token_secret=str(secret) if secret is not None else "",
            database_timeout=float(data.get("database_timeout", 5.0)),
            token_algorithm=str(data.get("token_algorithm", "HS256")),
            token_ttl=timedelta(minutes=float(data.get("token_ttl_minutes", 24 * 60))),
            password_rounds=int(data.get("password_rounds", 10)),
        )


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Load raw settings from a YAML file."""

    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping of settings")
    return {str(key).lower(): value for key, value in raw.items()}


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from an optional YAML file overlaid with environment variables."""

    env = os.environ if environ is None else environ
    data: Dict[str, object] = {}
    base_path: Path | None = None

    config_file = env.get(f"{_ENV_PREFIX}CONFIG")
    if config_file:
        config_path = Path(config_file).expanduser().resolve(strict=False)
        data.update(load_config_file(config_path))
        base_path = config_path.parent

    db_path = env.get(f"{_ENV_PREFIX}DB_PATH")
    if db_path and db_path.strip():
        data["database_path"] = str(resolve_database_path(db_path.strip()))

    overrides = {
        "database_timeout": env.get(f"{_ENV_PREFIX}DB_TIMEOUT"),
        "token_secret": env.get(f"{_ENV_PREFIX}TOKEN_SECRET"),
        "token_algorithm": env.get(f"{_ENV_PREFIX}TOKEN_ALGORITHM"),
        "token_ttl_minutes": env.get(f"{_ENV_PREFIX}TOKEN_TTL_MINUTES"),
        "password_rounds": env.get(f"{_ENV_PREFIX}PASSWORD_ROUNDS"),
    }
    for key, value in overrides.items():
        if value is not None and value.strip():
            data[key] = value.strip()

    return Settings.from_dict(data, base_path=base_path)


__all__ = ["MissingSecretError", "Settings", "load_config_file", "load_settings", "resolve_database_path"]
