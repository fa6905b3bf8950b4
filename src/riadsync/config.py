"""YAML + .env configuration loader."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _find_project_root() -> Path:
    """Walk up from this file to find the directory containing config.yaml."""
    current = Path(__file__).resolve().parent
    for _ in range(10):
        if (current / "config.yaml").exists():
            return current
        current = current.parent
    # Fallback to cwd
    return Path.cwd()


PROJECT_ROOT = _find_project_root()


def load_env() -> None:
    """Load .env file from project root."""
    env_path = PROJECT_ROOT / ".env"
    load_dotenv(env_path)


def load_yaml_config(path: Path | None = None) -> dict[str, Any]:
    """Load config.yaml, returning an empty mapping when the file is absent."""
    config_path = path or PROJECT_ROOT / "config.yaml"
    if not config_path.exists():
        logger.warning("config.yaml not found at %s, using defaults", config_path)
        return {}
    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def get_env(key: str, default: str | None = None) -> str | None:
    """Get an environment variable."""
    return os.environ.get(key, default)


def get_database_url() -> str:
    """Return the database URL, defaulting to a local SQLite file."""
    default = f"sqlite:///{PROJECT_ROOT / 'riadsync.db'}"
    return get_env("DATABASE_URL", default)


def section(name: str) -> dict[str, Any]:
    """Return one top-level config section, or an empty dict."""
    value = settings.get(name) or {}
    if not isinstance(value, dict):
        logger.warning("Config section %r is not a mapping, ignoring it", name)
        return {}
    return value


# Load on import
load_env()
settings: dict[str, Any] = load_yaml_config()
