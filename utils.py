"""
Filesystem helpers for the database file and the log file.

Relative paths in the configuration are anchored at the directory holding
these modules, so the CLI behaves the same from any working directory.
"""

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from sqlalchemy.engine import make_url

from config_manager import get_section

logger = logging.getLogger(__name__)

CONNECTION_STRING_ENV = "DB_CONNECTION_STRING"
_BASE_DIR = Path(__file__).resolve().parent


def _anchored(path_value: Any) -> Path:
    path = Path(path_value)
    return path if path.is_absolute() else _BASE_DIR / path


def _make_dir(directory: Path) -> Path:
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error(f"Cannot create directory '{directory}': {exc}")
        raise
    return directory


def _make_parent(path: Path) -> Path:
    _make_dir(path.parent)
    return path


def ensure_data_dir(config: Optional[Mapping[str, Any]] = None) -> Path:
    """
    Create the configured data directory if needed.

    Args:
        config: Optional configuration dictionary ('database.data_dir')

    Returns:
        Absolute path of the data directory
    """
    return _make_dir(_anchored(get_section(config, "database")["data_dir"]))


def resolve_connection_string(config: Optional[Mapping[str, Any]] = None) -> str:
    """
    Pick the SQLAlchemy URL for the budget tree store.

    DB_CONNECTION_STRING wins over 'database.connection_string', which wins
    over a SQLite file at 'database.path' inside the data directory. For a
    file-backed SQLite URL the containing directory is created.
    """
    database = get_section(config, "database")
    connection_string = os.environ.get(CONNECTION_STRING_ENV) or database.get("connection_string")

    if not connection_string:
        db_file = Path(database["path"])
        if not db_file.is_absolute():
            db_file = ensure_data_dir(config) / db_file
        return f"sqlite:///{_make_parent(db_file).as_posix()}"

    url = make_url(connection_string)
    if url.drivername.startswith("sqlite") and url.database not in (None, "", ":memory:"):
        _make_parent(_anchored(url.database))
    logger.debug(f"Using configured connection string for driver '{url.drivername}'")
    return connection_string


def resolve_log_path(log_path: str) -> Path:
    """Absolute path for the log file, with its directory created."""
    return _make_parent(_anchored(log_path))
