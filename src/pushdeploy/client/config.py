"""Persisted client credentials."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ValidationError

from pushdeploy.core.exceptions import ConfigurationError

CONFIG_DIR_ENV = "PUSHDEPLOY_CONFIG_DIR"
CONFIG_DIRNAME = ".pushdeploy"
CONFIG_FILENAME = "config.json"


class ClientConfig(BaseModel):
    api_key: str
    server_url: str = ""


def config_path() -> Path:
    """Location of the client config file, creating its directory owner-only."""
    override = os.getenv(CONFIG_DIR_ENV)
    config_dir = Path(override) if override else Path.home() / CONFIG_DIRNAME
    config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    return config_dir / CONFIG_FILENAME


def save_config(api_key: str, server_url: str) -> Path:
    """Persist credentials readable and writable by the owner only."""
    path = config_path()
    data = ClientConfig(api_key=api_key, server_url=server_url).model_dump_json(indent=2)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(data)
    os.chmod(path, 0o600)
    return path


def load_config() -> ClientConfig:
    """Load persisted credentials.

    Raises:
        ConfigurationError: Missing or unreadable file, or an empty API key
    """
    path = config_path()
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Failed to read config: {exc}") from exc

    try:
        config = ClientConfig.model_validate_json(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config file {path}: {exc}") from exc

    if not config.api_key:
        raise ConfigurationError("API key not found in config")
    return config
