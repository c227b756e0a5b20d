"""Configuration management for dirscope.

Loads settings from a YAML configuration file with environment variable
overrides (``DIRSCOPE_`` prefix, ``__`` for nested sections). Supports
.env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/dirscope.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=9090, ge=0, le=65535)
    backlog: int = Field(default=10, gt=0)
    buffer_size: int = Field(default=4096, gt=0, description="Max bytes taken by a single read")


class StorageConfig(BaseModel):
    users_file: Path = Field(default=Path("data/users.txt"))
    scratch_dir: Path = Field(default=Path("data/scratch"))
    session_log_dir: Path = Field(default=Path("logs"))


class ClientConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=9090, ge=1, le=65535)
    timeout: float = Field(default=30.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default="logs/server.log")


class Settings(BaseSettings):
    """Root configuration for the dirscope server and client.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "DIRSCOPE_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _drop_env_shadowed_sections(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _drop_env_shadowed_sections(yaml_data: dict) -> None:
    """Remove YAML keys that a DIRSCOPE_ environment variable overrides.

    Init kwargs outrank env vars in pydantic-settings, so YAML values
    have to step aside for the environment to win.
    """
    for section, values in list(yaml_data.items()):
        if not isinstance(values, dict):
            if f"DIRSCOPE_{section}".upper() in os.environ:
                del yaml_data[section]
            continue
        for key in list(values):
            if f"DIRSCOPE_{section}__{key}".upper() in os.environ:
                del values[key]
