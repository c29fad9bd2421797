"""
modules/activity/activity_log.py

Purpose
-------
Fire-and-forget audit sink. Every meaningful mutation (checkout, return,
exchange, transaction edit/delete, day close/reopen, cost edits) records one
row in `activity_logs` and one JSON line on the "pos_ledger.activity" logger.

Public API
----------
- log_activity(conn, action, entity_type, entity_name, details, user_id=None, entity_id=None, created_at=None) -> int | None
- log_event(logger, action, message, extra: dict = {})

A failure to record activity is logged and never raised to the caller.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Dict, Optional

from ...database.repositories.activity_repo import ActivityRepo
from ...database.tx import immediate_tx
from ...utils.helpers import now_str

__all__ = ["get_activity_logger", "log_activity", "log_event"]

_LOGGER_NAME = "pos_ledger.activity"


class _JsonLineFormatter(logging.Formatter):
    """
    Minimal JSON-lines formatter:
      {"ts":"2025-09-16T12:00:01.123Z","level":"INFO","name":"pos_ledger.activity","msg":"...","extra":{...}}
    """
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if hasattr(record, "extra_payload") and isinstance(record.extra_payload, dict):
            payload["extra"] = record.extra_payload
        return json.dumps(payload, ensure_ascii=False, default=str)


def get_activity_logger(level: int = logging.INFO) -> logging.Logger:
    """Logger writing JSON lines to stderr; configured once."""
    logger = logging.getLogger(_LOGGER_NAME)
    if logger.handlers:
        return logger
    logger.setLevel(level)
    sh = logging.StreamHandler()
    sh.setFormatter(_JsonLineFormatter())
    logger.addHandler(sh)
    return logger


def log_event(
    logger: logging.Logger,
    action: str,
    message: str,
    extra: Dict[str, object] | None = None,
    level: int = logging.INFO,
) -> None:
    """Log a structured event line; `action` is always present in the payload."""
    extra_payload: Dict[str, object] = {"action": action}
    if extra:
        for k, v in extra.items():
            if k not in extra_payload:
                extra_payload[k] = v
    logger.log(level, message, extra={"extra_payload": extra_payload})


def log_activity(
    conn: sqlite3.Connection,
    action: str,
    entity_type: str,
    entity_name: Optional[str] = None,
    details: Optional[str] = None,
    user_id: Optional[str] = None,
    entity_id: Optional[int] = None,
    created_at: Optional[str] = None,
) -> Optional[int]:
    """
    Record an activity row. Returns the new log_id, or None when recording
    failed (the failure is logged, the caller carries on).

    Services pass `created_at` from their own clock so the row lines up with
    the ledger rows it describes; the wall clock is the fallback.
    """
    logger = get_activity_logger()
    try:
        with immediate_tx(conn):
            log_id = ActivityRepo(conn).insert(
                action, entity_type, entity_id, entity_name, details, user_id, created_at or now_str()
            )
    except Exception:
        logger.warning("activity log write failed for %s/%s", action, entity_type, exc_info=True)
        return None
    log_event(
        logger,
        action,
        details or f"{action} {entity_type}",
        {"entity_type": entity_type, "entity_id": entity_id, "entity_name": entity_name, "user_id": user_id},
    )
    return log_id
