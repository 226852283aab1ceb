# jobs/check_rss.py
"""
Scheduled check-rss run, in-process (no HTTP hop).

Records a 'cron' run in the ledger and sends Teams notifications unless
--no-teams is given.

Usage:
    python -m jobs.check_rss
    python -m jobs.check_rss --sources nius,tagesschau --webhook-mode test --no-teams
"""
from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import argparse
import json

from news_monitor.check_rss import execute_run
from news_monitor.config import ConfigError, Settings
from news_monitor.db import db_conn
from news_monitor.logging_utils import log_event
from news_monitor.schemas import CheckRssRequest


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser()
    p.add_argument("--sources", default=None, help="comma-separated source keys (default: all)")
    p.add_argument("--webhook-mode", default="production", choices=["production", "test"])
    p.add_argument("--teams-mode", default="production", choices=["production", "test"])
    p.add_argument("--no-teams", action="store_true")
    args = p.parse_args(argv)

    sources = [s.strip() for s in args.sources.split(",") if s.strip()] if args.sources else None
    req = CheckRssRequest(
        webhook_mode=args.webhook_mode,
        sources=sources,
        teams_enabled=not args.no_teams,
        teams_mode=args.teams_mode,
    )

    log_event("cron_job_started", sources=sources, webhook_mode=args.webhook_mode)
    try:
        with db_conn() as conn:
            result = execute_run(conn, Settings.from_env(), req, trigger="cron")
    except ConfigError as exc:
        print(f"ERROR config: {exc}")
        return 2
    except Exception as exc:
        print(f"ERROR {type(exc).__name__}: {exc}")
        return 1

    print(json.dumps(result))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
