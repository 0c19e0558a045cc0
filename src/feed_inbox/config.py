"""Configuration management for Feed Inbox."""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils.paths import get_config_file_path

DEFAULT_TIMEOUT = 30
DEFAULT_MAX_REDIRECTS = 5


class Config(BaseModel):
    """Main configuration for Feed Inbox."""

    model_config = ConfigDict(extra="ignore")

    data_dir: Optional[str] = Field(default=None, description="Directory for the store, feed mirror and logs")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="Per-request network timeout in seconds")
    max_redirects: int = Field(default=DEFAULT_MAX_REDIRECTS, description="Redirects followed before giving up")
    retry_attempts: int = Field(default=2, description="Retries for 429/5xx responses")
    max_workers: int = Field(default=4, description="Concurrent fetches in a fetch-all batch")
    default_limit: int = Field(default=20, description="Entries returned by fetch when no limit is given")
    user_agent: str = "Feed-Inbox/0.1 (+https://github.com/feed-inbox/feed-inbox)"
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("max_redirects", "retry_attempts")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("max_workers", "default_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of {allowed}")
        return v.upper()


def load_config(config_file: Optional[Path] = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        config_file: Optional path to config file. If None, uses default path.

    Returns:
        Config object
    """
    if config_file is None:
        config_file = get_config_file_path()

    if not config_file.exists():
        config = Config()
        save_config(config, config_file)
        logging.info(f"Created default config at {config_file}")
        return config

    try:
        with open(config_file, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        config = Config(**data)
        logging.debug(f"Loaded config from {config_file}")
        return config

    except (yaml.YAMLError, ValueError) as e:
        logging.error(f"Error loading config from {config_file}: {e}")
        raise


def save_config(config: Config, config_file: Optional[Path] = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: Config object to save
        config_file: Optional path to config file. If None, uses default path.
    """
    if config_file is None:
        config_file = get_config_file_path()

    config_file.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(config.model_dump(exclude_none=True), f, default_flow_style=False, indent=2)

        logging.debug(f"Saved config to {config_file}")

    except (OSError, yaml.YAMLError) as e:
        logging.error(f"Error saving config to {config_file}: {e}")
        raise


def create_example_config() -> str:
    """Create an example configuration YAML string."""
    example_config = Config(
        data_dir="~/.local/share/feed-inbox",
        timeout=15,
        max_workers=8,
        default_limit=50,
        log_level="INFO",
    )

    return yaml.dump(example_config.model_dump(exclude_none=True), default_flow_style=False, indent=2)
