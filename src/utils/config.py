"""Configuration management using Pydantic Settings with YAML support."""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/favorites.db"

    @property
    def url(self) -> str:
        return f"sqlite+aiosqlite:///{self.path}"

    def ensure_directory(self) -> None:
        """Create the directory holding the database file."""
        if self.path != ":memory:":
            Path(self.path).expanduser().parent.mkdir(parents=True, exist_ok=True)


class RankingConfig(BaseModel):
    """Rank engine parameters."""

    # Parking range for renumbering; must exceed the largest list size
    temp_offset: int = 30000

    @field_validator("temp_offset")
    @classmethod
    def validate_temp_offset(cls, v: int) -> int:
        if v <= 1:
            raise ValueError("temp_offset must be greater than 1")
        return v


class WebConfig(BaseModel):
    """HTTP API configuration."""

    host: str = "127.0.0.1"
    port: int = 8080


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_format: bool = True
    file: str | None = None

    @property
    def file_path(self) -> Path | None:
        return Path(self.file).expanduser() if self.file else None


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="FAVORITES_",
        env_nested_delimiter="__",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path | str = "config.yaml") -> Settings:
    """Load configuration from YAML file with environment variable overrides.

    A missing file is not an error; defaults and the environment apply.
    """
    path = Path(config_path)

    if path.exists():
        with open(path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    return Settings(**_expand_env_vars(yaml_config))


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} patterns in config values."""
    if isinstance(obj, str):
        return ENV_VAR_PATTERN.sub(lambda m: os.environ.get(m.group(1), ""), obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    return obj
