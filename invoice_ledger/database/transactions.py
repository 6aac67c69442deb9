"""
Transaction helpers shared by the repositories.

Every compound write (invoice creation, payment add/update/delete, returns)
runs inside `immediate_tx(conn)`:

  - Outermost call: BEGIN IMMEDIATE (takes the write lock up front so two
    writers serialize instead of both reading stale stock), COMMIT on success,
    ROLLBACK on any exception.
  - Nested call (a repo used from inside another repo's transaction): a
    SAVEPOINT, so the inner work joins the outer transaction and an inner
    failure unwinds only to that savepoint before re-raising.
"""
from __future__ import annotations

import itertools
import sqlite3
from contextlib import contextmanager
from typing import Iterator

_savepoint_ids = itertools.count(1)


@contextmanager
def immediate_tx(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            conn.execute(f"RELEASE SAVEPOINT {name}")
        return

    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        cur.close()
