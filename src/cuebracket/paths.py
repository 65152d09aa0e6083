"""
Path utilities for cuebracket.
"""

from pathlib import Path


def get_base_path() -> Path:
    """
    Get the base path for the application.

    Returns:
        The project root directory (src/cuebracket/ -> project root)
    """
    return Path(__file__).parent.parent.parent


def get_i18n_dir() -> Path:
    """Get the i18n directory path."""
    return get_base_path() / "i18n"


def get_config_dir() -> Path:
    """Get the config directory path."""
    return get_base_path() / "config"


def get_data_dir() -> Path:
    """
    Get the user data directory for storing the local database.

    Returns:
        .cuebracket/ in the current working directory (created on demand)
    """
    data_dir = Path.cwd() / ".cuebracket"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_default_db_path() -> Path:
    """Path of the SQLite file used by the local backend."""
    return get_data_dir() / "cuebracket.sqlite"
