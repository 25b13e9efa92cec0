"""Configuration management for remotetouch.

Loads settings from an optional YAML configuration file with environment
variable overrides (``REMOTETOUCH_*``). Supports .env files.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from remotetouch.domain.models import DeviceMode, SessionConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/remotetouch.yaml")


class TimeoutsConfig(BaseModel):
    handshake: float = Field(default=15.0, gt=0, description="Seconds to wait for init")
    command: float = Field(default=30.0, gt=0, description="Seconds to wait for a reply")
    shutdown: float = Field(default=5.0, gt=0, description="Seconds to wait for shutdown")


class SshConfig(BaseModel):
    executable: str = Field(default="ssh")
    keepalive_interval: int = Field(default=15, gt=0)
    keepalive_count_max: int = Field(default=3, gt=0)
    python: str = Field(default="python3", description="Interpreter on the remote host")
    engine_debug: bool = Field(default=False, description="DEBUG logging in the engine")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for remotetouch.

    Connection defaults (``ssh_*``, screen size, sudo) fill in whatever a
    caller leaves out when opening a session.
    """

    model_config = {
        "env_prefix": "REMOTETOUCH_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Connection defaults
    ssh_host: str | None = Field(default=None)
    ssh_user: str = Field(default="pi")
    ssh_port: int = Field(default=22, ge=1, le=65535)
    ssh_key: str | None = Field(default=None)
    screen_width: int | None = Field(default=None, gt=1)
    screen_height: int | None = Field(default=None, gt=1)
    use_sudo: bool = Field(default=False)
    device_mode: DeviceMode = Field(default=DeviceMode.AUTO)

    # HTTP API
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)

    # Configuration sections
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    ssh: SshConfig = Field(default_factory=SshConfig)
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
        # YAML values arrive as init kwargs and must lose to the environment
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    def session_config(self, **overrides: Any) -> SessionConfig:
        """Build a SessionConfig from these defaults.

        Overrides whose value is None are ignored, so CLI flags and API
        bodies can pass every field unconditionally.

        Raises:
            ValueError: If no host is configured or given.
        """
        values: dict[str, Any] = {
            "host": self.ssh_host,
            "user": self.ssh_user,
            "port": self.ssh_port,
            "ssh_key": self.ssh_key,
            "screen_width": self.screen_width,
            "screen_height": self.screen_height,
            "use_sudo": self.use_sudo,
            "device_mode": self.device_mode,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        if not values["host"]:
            raise ValueError("No SSH host given (set REMOTETOUCH_SSH_HOST or pass a host)")
        return SessionConfig(**values)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data: dict[str, Any] = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    elif config_path:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    return Settings(**yaml_data)
