# database/versioning.py
import logging
import sqlite3

from ..constants import TABLE_SCHEMA_VERSION

_log = logging.getLogger(__name__)


def _ensure_table(conn: sqlite3.Connection):
    # single-row table; id is pinned to 1
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_VERSION}(
            id INTEGER PRIMARY KEY CHECK (id=1),
            version TEXT NOT NULL
        );
    """)


def get_current_version(conn: sqlite3.Connection) -> str | None:
    _ensure_table(conn)
    row = conn.execute(f"SELECT version FROM {TABLE_SCHEMA_VERSION} WHERE id=1;").fetchone()
    return row[0] if row else None


def set_current_version(conn: sqlite3.Connection, version: str):
    _ensure_table(conn)
    conn.execute(
        f"""
        INSERT INTO {TABLE_SCHEMA_VERSION}(id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version=excluded.version;
        """,
        (version,),
    )
    conn.commit()


def ensure_version(conn: sqlite3.Connection, expected: str) -> bool:
    """
    Stamp `expected` as the schema version. Returns True when the stored
    version changed (fresh database or upgrade).
    """
    current = get_current_version(conn)
    if current == expected:
        return False
    set_current_version(conn, expected)
    _log.info("schema version %s -> %s", current or "none", expected)
    return True
