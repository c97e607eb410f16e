"""Persisted configuration management."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

from .models import Config

CONFIG_PATH = (Path.home() / ".actiontap" / "config.json").expanduser()

_ENV_OVERRIDES = {
    "ACTIONTAP_NOTION_API_KEY": "notion_api_key",
    "ACTIONTAP_NOTION_DATABASE_ID": "notion_database_id",
}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded, saved or is insufficient for an action."""


def load_config(apply_env: bool = True) -> Config:
    config = Config()
    if CONFIG_PATH.exists():
        try:
            payload = json.loads(CONFIG_PATH.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
        known = {f.name for f in fields(Config)}
        unknown = sorted(set(payload) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")
        config = Config(**payload)

    if apply_env:
        for env_var, attr in _ENV_OVERRIDES.items():
            value = os.getenv(env_var)
            if value:
                setattr(config, attr, value)
    return config


def save_config(config: Config) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in asdict(config).items() if v is not None}
    CONFIG_PATH.write_text(json.dumps(data, indent=2))
    # Notion credentials live in this file.
    CONFIG_PATH.chmod(0o600)


def update_config(**kwargs: Any) -> Config:
    # Environment overrides are never written back to disk.
    config = load_config(apply_env=False)
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ConfigError(f"Unknown configuration key: {key}")
    save_config(config)
    return config


def require_credentials(config: Config) -> None:
    """Fail fast before any submission attempt when Notion is not configured."""

    if not config.has_credentials:
        raise ConfigError(
            "Please configure your Notion API key and database ID "
            "(`actiontap config --notion-api-key ... --notion-database-id ...`)."
        )
