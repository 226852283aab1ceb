# jobs/cleanup_news.py
"""
Delete articles that were processed more than --hours ago (default 24).
Meant to run hourly from the scheduler.

Usage:
    python -m jobs.cleanup_news --hours 24
"""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import argparse
from datetime import datetime, timedelta, timezone

from news_monitor.db import db_conn
from news_monitor.logging_utils import log_event
from news_monitor.repo import delete_articles_older_than


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser()
    p.add_argument("--hours", type=float, default=24.0)
    args = p.parse_args(argv)

    if args.hours <= 0:
        print("ERROR --hours must be > 0")
        return 2

    cutoff = datetime.now(timezone.utc) - timedelta(hours=args.hours)
    with db_conn() as conn:
        deleted = delete_articles_older_than(conn, cutoff=cutoff)

    log_event("cleanup_done", cutoff=cutoff.isoformat(), deleted=deleted)
    print(f"OK deleted={deleted} cutoff={cutoff.isoformat()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
