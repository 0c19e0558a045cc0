"""Path utilities for Feed Inbox."""

import os
from pathlib import Path
from typing import Optional

HOME_ENV_VAR = "FEED_INBOX_HOME"

DB_FILENAME = "feed.db"
MIRROR_FILENAME = "feeds.json"
CONFIG_FILENAME = "config.yaml"


def get_data_dir(override: Optional[str] = None) -> Path:
    """
    Get the data directory holding the store, the feed mirror and logs.

    Resolution order:
    - explicit override (the ``data_dir`` config value)
    - the FEED_INBOX_HOME environment variable
    - ~/.local/share/feed-inbox

    Args:
        override: Optional directory taking precedence over everything else

    Returns:
        Path to the data directory (not created)
    """
    if override:
        return Path(override).expanduser()

    env_home = os.environ.get(HOME_ENV_VAR)
    if env_home:
        return Path(env_home).expanduser()

    return Path(os.path.expanduser("~/.local/share/feed-inbox"))


def ensure_data_dir(override: Optional[str] = None) -> Path:
    """
    Ensure the data directory exists and return its path.

    Returns:
        Path to the data directory
    """
    data_dir = get_data_dir(override)
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_config_file_path() -> Path:
    """Get the path to the configuration file."""
    return get_data_dir() / CONFIG_FILENAME


def get_db_path(override: Optional[str] = None) -> Path:
    return ensure_data_dir(override) / DB_FILENAME


def get_mirror_path(override: Optional[str] = None) -> Path:
    return ensure_data_dir(override) / MIRROR_FILENAME


def get_log_dir(override: Optional[str] = None) -> Path:
    """Get the log directory path."""
    log_dir = ensure_data_dir(override) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir
