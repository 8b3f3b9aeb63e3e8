"""Configuration management for rokurelay.

Loads settings from a YAML configuration file with environment variable
overrides. Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/rokurelay.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3002, ge=1, le=65535)
    roku_ip: str = Field(default="", description="Initial downstream target")


class DownstreamConfig(BaseModel):
    port: int = Field(default=8060, ge=1, le=65535, description="ECP port on the device")
    timeout: float = Field(default=0.5, gt=0, description="Deadline per forwarded command (s)")


class SessionConfig(BaseModel):
    server_url: str = Field(default="ws://localhost:3002")
    roku_ip: str = Field(default="")
    reconnect_floor: float = Field(default=0.5, gt=0)
    reconnect_ceiling: float = Field(default=5.0, gt=0)
    reconnect_factor: float = Field(default=1.5, ge=1.0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the relay and its controller session.

    Loads from YAML file and supports environment variable overrides,
    which take precedence over the file. Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "ROKURELAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    downstream: DownstreamConfig = Field(default_factory=DownstreamConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML values arrive as init kwargs; env vars must still win
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: ROKURELAY_* env vars > .env file > YAML file > defaults
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

    _apply_env_overrides(yaml_data)

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


def _apply_env_overrides(yaml_data: dict) -> None:
    """Apply overrides from non-prefixed environment variables.

    ``ROKU_IP`` seeds both the server's initial target and the
    controller session's target unless the YAML file already sets them.
    """
    roku_ip = os.environ.get("ROKU_IP", "").strip()
    if not roku_ip:
        return

    for section in ("server", "session"):
        if not isinstance(yaml_data.get(section), dict):
            yaml_data[section] = {}
        if not yaml_data[section].get("roku_ip"):
            yaml_data[section]["roku_ip"] = roku_ip
