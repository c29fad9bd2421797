from __future__ import annotations

import sqlite3


class ActivityRepo:
    def __init__(self, conn: sqlite3.Connection):
        conn.row_factory = sqlite3.Row
        self.conn = conn

    def insert(
        self,
        action: str,
        entity_type: str,
        entity_id: int | None,
        entity_name: str | None,
        details: str | None,
        user_id: str | None,
        created_at: str,
    ) -> int:
        cur = self.conn.execute(
            "INSERT INTO activity_logs(action, entity_type, entity_id, entity_name, details, user_id, created_at) "
            "VALUES (?,?,?,?,?,?,?)",
            (action, entity_type, entity_id, entity_name, details, user_id, created_at),
        )
        return int(cur.lastrowid)

    def recent(self, limit: int = 50, entity_type: str | None = None) -> list[dict]:
        sql = "SELECT * FROM activity_logs"
        params: list = []
        if entity_type:
            sql += " WHERE entity_type=?"
            params.append(entity_type)
        sql += " ORDER BY log_id DESC LIMIT ?"
        params.append(max(1, int(limit)))
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]
