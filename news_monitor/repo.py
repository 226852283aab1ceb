from __future__ import annotations

from datetime import datetime, timezone
import sqlite3
import uuid

from news_monitor.error_codes import WEBHOOK_ERROR_PREFIX


ARTICLE_COLUMNS = "id, link, title, response_text, processed_at, published_at, created_at"
RUN_COLUMNS = "id, started_at, finished_at, trigger, success, processed, message, error"


def _iso(value: datetime | str | None) -> str | None:
    if value is None or isinstance(value, str):
        return value
    # Stored timestamps are UTC so text ordering matches time ordering
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


def _article_row(row) -> dict:
    return {
        "id": row[0],
        "link": row[1],
        "title": row[2],
        "response_text": row[3],
        "processed_at": row[4],
        "published_at": row[5],
        "created_at": row[6],
    }


def _run_row(row) -> dict:
    return {
        "id": row[0],
        "started_at": row[1],
        "finished_at": row[2],
        "trigger": row[3],
        "success": bool(row[4]),
        "processed": row[5],
        "message": row[6],
        "error": row[7],
    }


# --- Articles ---

def get_all_links(conn: sqlite3.Connection) -> set[str]:
    """Snapshot of every stored link. Loaded once per run."""
    rows = conn.execute("SELECT link FROM news_items").fetchall()
    return {row[0] for row in rows}


def insert_article(
    conn: sqlite3.Connection,
    *,
    link: str,
    title: str | None,
    response_text: str | None,
    processed_at: datetime | str,
    published_at: datetime | str | None = None,
) -> str:
    """
    Insert one delivered article and return its id.

    Raises sqlite3.IntegrityError if the link is already stored.
    """
    article_id = uuid.uuid4().hex
    processed = _iso(processed_at)
    conn.execute(
        """
        INSERT INTO news_items (id, link, title, response_text, processed_at, published_at, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?);
        """,
        (article_id, link, title, response_text, processed, _iso(published_at), processed),
    )
    conn.commit()
    return article_id


def update_article_response(
    conn: sqlite3.Connection,
    *,
    article_id: str,
    response_text: str,
    processed_at: datetime | str,
) -> bool:
    """Overwrite the stored result of an article (retry). Returns False if the id is unknown."""
    cur = conn.execute(
        """
        UPDATE news_items
        SET response_text = ?, processed_at = ?
        WHERE id = ?
        """,
        (response_text, _iso(processed_at), article_id),
    )
    conn.commit()
    return cur.rowcount == 1


def get_article_by_id(conn: sqlite3.Connection, *, article_id: str) -> dict | None:
    row = conn.execute(
        f"SELECT {ARTICLE_COLUMNS} FROM news_items WHERE id = ?",
        (article_id,),
    ).fetchone()
    return _article_row(row) if row else None


def list_articles(conn: sqlite3.Connection, *, failed: bool | None = None, limit: int = 200) -> list[dict]:
    """
    Articles newest-processed first.

    failed=True  -> only rows whose response_text carries the webhook error prefix
    failed=False -> only genuine responses
    failed=None  -> everything
    """
    prefix_match = "substr(COALESCE(response_text, ''), 1, ?) = ?"
    params: list = []
    where = ""
    if failed is True:
        where = f"WHERE {prefix_match}"
        params += [len(WEBHOOK_ERROR_PREFIX), WEBHOOK_ERROR_PREFIX]
    elif failed is False:
        where = f"WHERE NOT ({prefix_match})"
        params += [len(WEBHOOK_ERROR_PREFIX), WEBHOOK_ERROR_PREFIX]

    rows = conn.execute(
        f"""
        SELECT {ARTICLE_COLUMNS}
        FROM news_items
        {where}
        ORDER BY processed_at DESC, created_at DESC
        LIMIT ?;
        """,
        (*params, limit),
    ).fetchall()
    return [_article_row(r) for r in rows]


def delete_article(conn: sqlite3.Connection, *, article_id: str) -> int:
    cur = conn.execute("DELETE FROM news_items WHERE id = ?", (article_id,))
    conn.commit()
    return cur.rowcount


def delete_all_articles(conn: sqlite3.Connection) -> int:
    cur = conn.execute("DELETE FROM news_items")
    conn.commit()
    return cur.rowcount


def delete_articles_older_than(conn: sqlite3.Connection, *, cutoff: datetime) -> int:
    """Remove articles processed before cutoff. Returns number of rows deleted."""
    cur = conn.execute("DELETE FROM news_items WHERE processed_at < ?", (_iso(cutoff),))
    conn.commit()
    return cur.rowcount


# --- Runs ---

def insert_run(conn: sqlite3.Connection, *, run_id: str, started_at: datetime | str, trigger: str) -> None:
    conn.execute(
        """
        INSERT INTO rss_runs (id, started_at, trigger, success, processed)
        VALUES (?, ?, ?, 1, 0);
        """,
        (run_id, _iso(started_at), trigger),
    )
    conn.commit()


def finish_run(
    conn: sqlite3.Connection,
    run_id: str,
    *,
    finished_at: datetime | str,
    success: bool,
    processed: int,
    message: str | None = None,
    error: str | None = None,
) -> None:
    conn.execute(
        """
        UPDATE rss_runs
        SET finished_at = ?, success = ?, processed = ?, message = ?, error = ?
        WHERE id = ?
        """,
        (_iso(finished_at), 1 if success else 0, processed, message, error, run_id),
    )
    conn.commit()


def get_run_by_id(conn: sqlite3.Connection, *, run_id: str) -> dict | None:
    row = conn.execute(f"SELECT {RUN_COLUMNS} FROM rss_runs WHERE id = ?", (run_id,)).fetchone()
    return _run_row(row) if row else None


def get_latest_run(conn: sqlite3.Connection, *, successful_only: bool = False) -> dict | None:
    """
    Most recently started run. With successful_only, the latest finished
    run that succeeded (what the dashboard shows as "last check").
    """
    where = "WHERE success = 1 AND finished_at IS NOT NULL" if successful_only else ""
    row = conn.execute(
        f"""
        SELECT {RUN_COLUMNS}
        FROM rss_runs
        {where}
        ORDER BY started_at DESC
        LIMIT 1;
        """
    ).fetchone()
    return _run_row(row) if row else None


def list_runs(conn: sqlite3.Connection, *, limit: int = 20) -> list[dict]:
    rows = conn.execute(
        f"SELECT {RUN_COLUMNS} FROM rss_runs ORDER BY started_at DESC LIMIT ?;",
        (limit,),
    ).fetchall()
    return [_run_row(r) for r in rows]
