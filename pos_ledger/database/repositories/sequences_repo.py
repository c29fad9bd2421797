from __future__ import annotations

import sqlite3
from typing import Callable, Optional

from ..tx import immediate_tx


class SequencesRepo:
    """
    Monotonic named counters (invoice numbers, order numbers).

    `next_value` reads and bumps the counter inside the caller's unit of work,
    so two writers can never be handed the same number.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def current(self, name: str) -> int | None:
        r = self.conn.execute("SELECT value FROM sequences WHERE name=?", (name,)).fetchone()
        return None if r is None else int(r[0])

    def next_value(self, name: str, seed: Optional[Callable[[], int]] = None) -> int:
        """
        Increment and return the counter. On first use the counter starts from
        `seed()` (e.g. the largest legacy number) or 0.
        """
        with immediate_tx(self.conn):
            if self.current(name) is None:
                start = int(seed()) if seed else 0
                self.conn.execute(
                    "INSERT INTO sequences(name, value) VALUES (?, ?)", (name, max(start, 0))
                )
            self.conn.execute("UPDATE sequences SET value = value + 1 WHERE name=?", (name,))
            return int(self.current(name))
