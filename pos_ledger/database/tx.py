from __future__ import annotations

import itertools
import sqlite3
from contextlib import contextmanager

_savepoints = itertools.count(1)


@contextmanager
def immediate_tx(conn: sqlite3.Connection):
    """
    Unit of work on `conn`.

    Outermost use starts an IMMEDIATE transaction (write lock taken up front),
    commits on success and rolls back on error. When a transaction is already
    open the block runs inside a SAVEPOINT instead, so services can compose
    without committing each other's work early.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoints)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO {name}")
            conn.execute(f"RELEASE {name}")
            raise
        conn.execute(f"RELEASE {name}")
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
