"""
Run ledger: one rss_runs row per check-rss invocation.

Both calls are best effort. A ledger write that fails is logged and the run
carries on; the ledger must never be the reason a run fails.
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone

from news_monitor.logging_utils import log_error, log_event
from news_monitor.repo import finish_run, insert_run


TRIGGERS = ("cron", "manual", "retry")


def log_run_start(conn: sqlite3.Connection, trigger: str) -> str | None:
    """Insert a started run and return its id, or None if the insert failed."""
    run_id = uuid.uuid4().hex
    try:
        insert_run(conn, run_id=run_id, started_at=datetime.now(timezone.utc), trigger=trigger)
    except sqlite3.Error as exc:
        log_error("run_ledger_start_failed", trigger=trigger, error=str(exc))
        return None

    log_event("run_started", run_id=run_id, trigger=trigger)
    return run_id


def log_run_finish(
    conn: sqlite3.Connection,
    run_id: str | None,
    *,
    success: bool,
    processed: int = 0,
    message: str | None = None,
    error: str | None = None,
) -> None:
    if run_id is None:
        return
    try:
        finish_run(
            conn,
            run_id,
            finished_at=datetime.now(timezone.utc),
            success=success,
            processed=processed,
            message=message,
            error=error,
        )
    except sqlite3.Error as exc:
        log_error("run_ledger_finish_failed", run_id=run_id, error=str(exc))
        return

    log_event("run_finished", run_id=run_id, success=success, processed=processed, error=error)
