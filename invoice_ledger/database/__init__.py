# database/__init__.py
from __future__ import annotations

from pathlib import Path
import logging
import sqlite3

from ..config import DB_PATH
from ..constants import BUSY_TIMEOUT_SECONDS, SCHEMA_VERSION
from ..utils.loggers import get_logger
from . import schema as schema_module
from .transactions import immediate_tx
from .versioning import ensure_version

_log = logging.getLogger(__name__)


def configure_connection(conn: sqlite3.Connection) -> sqlite3.Connection:
    """Row access by name, FK enforcement and a busy timeout for concurrent writers."""
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(BUSY_TIMEOUT_SECONDS * 1000)};")
    return conn


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - WAL mode (file databases)
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Ensures the schema and version row are applied idempotently.

    Pass ":memory:" for a throwaway single-connection store.
    """
    get_logger()
    target = DB_PATH if db_path is None else db_path
    in_memory = str(target) == ":memory:"

    if not in_memory:
        target = Path(target)
        target.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(
        str(target),
        timeout=BUSY_TIMEOUT_SECONDS,
    )
    configure_connection(conn)
    if not in_memory:
        conn.execute("PRAGMA journal_mode = WAL;")

    schema_module.apply_schema(conn)
    if ensure_version(conn, SCHEMA_VERSION):
        _log.info("database %s ready", target)

    conn.commit()
    return conn


__all__ = [
    "configure_connection",
    "get_connection",
    "immediate_tx",
]
