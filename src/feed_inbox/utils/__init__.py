"""Utility functions for Feed Inbox."""

from .dates import format_timestamp, utc_now, utc_now_iso
from .paths import (
    ensure_data_dir,
    get_config_file_path,
    get_data_dir,
    get_db_path,
    get_log_dir,
    get_mirror_path,
)

__all__ = [
    "ensure_data_dir",
    "format_timestamp",
    "get_config_file_path",
    "get_data_dir",
    "get_db_path",
    "get_log_dir",
    "get_mirror_path",
    "utc_now",
    "utc_now_iso",
]
