# news_monitor/db.py
"""
SQLite store for delivered articles (news_items) and the run ledger (rss_runs).

The file location comes from NEWS_DB_PATH; unset means ./data/news.db.
"""
from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path


DEFAULT_DB_PATH = "./data/news.db"


class InvalidDbPathError(Exception):
    """NEWS_DB_PATH names a drive or mount that does not exist."""


@contextmanager
def db_conn():
    """Yield a connection with the schema in place; always closed afterwards."""
    conn = get_conn()
    try:
        init_db(conn)
        yield conn
    finally:
        conn.close()


def get_conn() -> sqlite3.Connection:
    configured = os.environ.get("NEWS_DB_PATH")
    path = Path(configured or DEFAULT_DB_PATH)

    # Refuse a path whose drive or mount point is missing
    if configured and path.anchor and not Path(path.anchor).exists():
        raise InvalidDbPathError(f"NEWS_DB_PATH root '{path.anchor}' does not exist: {configured}")

    path.parent.mkdir(parents=True, exist_ok=True)

    # Background runs open their own connection on the worker thread
    return sqlite3.connect(str(path), timeout=10.0)


def init_db(conn: sqlite3.Connection) -> None:
    """
    Create required tables and indexes if they don't exist.
    """
    # news_items: one row per successfully delivered article, link is the dedupe key
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS news_items (
            id TEXT PRIMARY KEY,
            link TEXT NOT NULL UNIQUE,
            title TEXT,
            response_text TEXT,
            processed_at TEXT NOT NULL,
            published_at TEXT,
            created_at TEXT NOT NULL
        );
        """
    )

    # rss_runs: one row per check-rss invocation (insert at start, update at finish)
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS rss_runs (
            id TEXT PRIMARY KEY,
            started_at TEXT NOT NULL,
            finished_at TEXT,
            trigger TEXT NOT NULL DEFAULT 'cron',
            success INTEGER NOT NULL DEFAULT 1,
            processed INTEGER NOT NULL DEFAULT 0,
            message TEXT,
            error TEXT
        );
        """
    )

    # Idempotent migration: published_at arrived after the first schema (for existing DBs)
    cols = [row[1] for row in conn.execute("PRAGMA table_info(news_items);").fetchall()]
    if "published_at" not in cols:
        conn.execute("ALTER TABLE news_items ADD COLUMN published_at TEXT;")
        conn.commit()

    conn.execute("CREATE INDEX IF NOT EXISTS idx_news_items_link ON news_items(link)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_news_items_processed_at ON news_items(processed_at DESC)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_news_items_published_at ON news_items(published_at DESC)")
    conn.execute("CREATE INDEX IF NOT EXISTS rss_runs_started_at_desc_idx ON rss_runs(started_at DESC)")

    conn.commit()
