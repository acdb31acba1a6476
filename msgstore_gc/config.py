"""msgstore-gc configuration management.

Configuration sources (in priority order):
1. Environment variables (MSGGC_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from sqlalchemy.engine import URL, make_url

# Content modes that close a conversation when carried by a RESPONSE.
DEFAULT_TERMINAL_MODES = ["MESSAGE", "REJECT", "ERROR"]

# Progress updates never close a conversation on their own.
NON_TERMINAL_MODES = frozenset({"STATUS"})


class DatabaseConfig(BaseModel):
    """Message store connection configuration."""

    # SQLite for local runs; the gateway store is usually postgresql+asyncpg://
    url: str = "sqlite+aiosqlite:///./message_store.db"
    echo: bool = False

    # Credentials kept apart from the URL so they can come from the environment
    username: str | None = None
    password: SecretStr | None = None

    def get_url(self) -> URL:
        """Build the connection URL with credentials applied."""
        url = make_url(self.url)
        if self.username is not None:
            url = url.set(username=self.username)
        if self.password is not None:
            url = url.set(password=self.password.get_secret_value())
        return url


class GCConfig(BaseModel):
    """Garbage collection configuration."""

    enabled: bool = True
    run_on_startup: bool = True
    interval_seconds: float = Field(default=300, gt=0)  # 5 minutes

    # RESPONSE content modes that mark the referenced REQUEST as closed
    terminal_modes: list[str] = Field(default_factory=lambda: list(DEFAULT_TERMINAL_MODES))

    @field_validator("terminal_modes")
    @classmethod
    def _validate_terminal_modes(cls, value: list[str]) -> list[str]:
        modes = [mode.strip().upper() for mode in value]
        if not modes or not all(modes):
            raise ValueError("terminal_modes must contain at least one mode")
        non_terminal = NON_TERMINAL_MODES.intersection(modes)
        if non_terminal:
            raise ValueError(f"{sorted(non_terminal)} cannot close a conversation")
        # Keep order, drop duplicates
        return list(dict.fromkeys(modes))


class LoggingConfig(BaseModel):
    """Log output configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["console", "json"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class Settings(BaseSettings):
    """msgstore-gc application settings."""

    model_config = SettingsConfigDict(
        env_prefix="MSGGC_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    gc: GCConfig = Field(default_factory=GCConfig)
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
        # File values arrive as init kwargs; environment must win over them
        return env_settings, init_settings, file_secret_settings


def _load_config_file(config_file: str | Path | None = None) -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. Explicit path (must exist)
    2. MSGGC_CONFIG_FILE environment variable
    3. ./config.yaml
    4. /etc/msgstore-gc/config.yaml
    """
    if config_file is not None:
        with open(config_file) as f:
            return yaml.safe_load(f) or {}

    config_paths = [
        os.environ.get("MSGGC_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/msgstore-gc/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


def load_settings(config_file: str | Path | None = None) -> Settings:
    """Build settings from the YAML file and the environment.

    Raises:
        OSError: explicit config file cannot be read
        yaml.YAMLError: config file is not valid YAML
        pydantic.ValidationError: values are out of range
    """
    file_config = _load_config_file(config_file)
    return Settings(**file_config)
