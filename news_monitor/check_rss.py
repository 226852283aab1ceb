# news_monitor/check_rss.py
"""
The check-rss run: fetch each selected feed, keep items that are new and
recent, deliver them to the webhook, store the ones that succeeded.

Sources and items are processed strictly one after another. The in-memory
link set is extended as items succeed, which is what stops the same link
from being delivered twice when two feeds carry it in the same run.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from news_monitor.config import Settings
from news_monitor.db import db_conn
from news_monitor.feeds import select_sources
from news_monitor.freshness import (
    OPERATING_END_HOUR,
    OPERATING_START_HOUR,
    is_within_operating_hours,
    select_fresh,
)
from news_monitor.ledger import TRIGGERS, log_run_finish, log_run_start
from news_monitor.logging_utils import log_error, log_event
from news_monitor.repo import get_all_links, get_article_by_id, insert_article, update_article_response
from news_monitor.rss_fetch import fetch_feed
from news_monitor.rss_parse import parse_feed
from news_monitor.schemas import CheckRssRequest, RetryItem
from news_monitor.webhook import deliver, notify_teams


OUTSIDE_HOURS_MESSAGE = f"Outside operating hours ({OPERATING_START_HOUR}:00-{OPERATING_END_HOUR}:00)"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def trigger_for(req: CheckRssRequest, *, system: bool) -> str:
    if req.retry_item is not None:
        return "retry"
    return "cron" if system else "manual"


def _teams_url(settings: Settings, req: CheckRssRequest, force_teams: bool) -> str | None:
    if not (force_teams or req.teams_enabled):
        return None
    url = settings.teams_webhook_url(req.teams_mode)
    if not url:
        log_event("teams_not_configured", teams_mode=req.teams_mode)
    return url


def retry_article(
    conn: sqlite3.Connection,
    item: RetryItem,
    *,
    webhook_url: str,
    teams_url: str | None,
) -> dict:
    """
    Re-send one stored article and overwrite its response_text whatever the outcome,
    so the dashboard always shows the latest state.
    """
    if get_article_by_id(conn, article_id=item.id) is None:
        log_event("retry_unknown_article", article_id=item.id, link=item.link)
        return {"success": False, "message": "Article not found", "response_text": None}

    log_event("retry_started", article_id=item.id, link=item.link)
    result = deliver(webhook_url, link=item.link, title=item.title, source=None, now=utcnow())

    updated = update_article_response(
        conn,
        article_id=item.id,
        response_text=result.response_text,
        processed_at=utcnow(),
    )
    if not updated:
        # Deleted while the retry was in flight
        log_event("retry_unknown_article", article_id=item.id, link=item.link)
        return {"success": False, "message": "Article not found", "response_text": result.response_text}

    if result.ok and teams_url:
        notify_teams(
            teams_url,
            link=item.link,
            title=item.title,
            source=None,
            response_text=result.response_text,
            now=utcnow(),
        )

    return {
        "success": result.ok,
        "message": "Retry successful" if result.ok else "Retry failed",
        "response_text": result.response_text,
    }


def run_check(
    conn: sqlite3.Connection,
    settings: Settings,
    req: CheckRssRequest,
    *,
    force_teams: bool = False,
    now: datetime | None = None,
) -> dict:
    """
    One check-rss pass (or one retry, when req.retry_item is set).

    Raises:
        ConfigError if the webhook for req.webhook_mode is not configured.
        sqlite3.Error on store failures other than a duplicate link.
    """
    now = now or utcnow()
    teams_url = _teams_url(settings, req, force_teams)

    if req.retry_item is not None:
        return retry_article(
            conn,
            req.retry_item,
            webhook_url=settings.webhook_url(req.webhook_mode),
            teams_url=teams_url,
        )

    if not is_within_operating_hours(now):
        log_event("outside_operating_hours", now=now.isoformat())
        return {
            "success": True,
            "message": OUTSIDE_HOURS_MESSAGE,
            "processed": 0,
            "total_in_feed": 0,
            "sources": {},
        }

    webhook_url = settings.webhook_url(req.webhook_mode)

    existing_links = get_all_links(conn)
    log_event("existing_links_loaded", count=len(existing_links))

    processed = 0
    total_in_feed = 0
    per_source: dict[str, dict[str, int]] = {}

    for key, source in select_sources(req.sources):
        fetched = fetch_feed(source["url"])
        if not fetched.ok:
            log_error(
                "feed_fetch_failed",
                source=key,
                url=source["url"],
                error_code=fetched.error_code,
                error_message=fetched.error_message,
            )
            per_source[key] = {"processed": 0, "total": 0}
            continue

        items = parse_feed(fetched.content or "")
        fresh = select_fresh(items, existing_links, now=now)
        total_in_feed += len(items)
        log_event("feed_fetch_ok", source=key, items=len(items), fresh=len(fresh))

        source_processed = 0
        for item in fresh:
            # A feed can list the same link twice
            if item.link in existing_links:
                continue

            result = deliver(webhook_url, link=item.link, title=item.title, source=source["name"], now=utcnow())
            if not result.ok:
                # Not stored: the item is picked up again next run
                continue

            try:
                insert_article(
                    conn,
                    link=item.link,
                    title=item.title,
                    response_text=result.response_text,
                    processed_at=utcnow(),
                    published_at=item.published_at,
                )
            except sqlite3.IntegrityError:
                log_event("article_already_stored", link=item.link, source=key)
                existing_links.add(item.link)
                continue

            existing_links.add(item.link)
            source_processed += 1

            if teams_url:
                notify_teams(
                    teams_url,
                    link=item.link,
                    title=item.title,
                    source=source["name"],
                    response_text=result.response_text,
                    now=utcnow(),
                )

        per_source[key] = {"processed": source_processed, "total": len(items)}
        processed += source_processed

    return {
        "success": True,
        "message": f"Processed {processed} new items",
        "processed": processed,
        "total_in_feed": total_in_feed,
        "sources": per_source,
    }


def execute_run(
    conn: sqlite3.Connection,
    settings: Settings,
    req: CheckRssRequest,
    *,
    trigger: str,
    force_teams: bool = False,
    now: datetime | None = None,
) -> dict:
    """run_check bracketed by the run ledger. Failures are recorded, then re-raised."""
    if trigger not in TRIGGERS:
        raise ValueError(f"unknown trigger: {trigger}")

    run_id = log_run_start(conn, trigger)
    try:
        result = run_check(conn, settings, req, force_teams=force_teams, now=now)
    except Exception as exc:
        log_run_finish(conn, run_id, success=False, error=f"{type(exc).__name__}: {exc}")
        raise

    if "processed" in result:
        count = result["processed"]
    else:
        count = 1 if result["success"] else 0
    log_run_finish(
        conn,
        run_id,
        success=result["success"],
        processed=count,
        message=result.get("message"),
    )
    result["run_id"] = run_id
    return result


def execute_run_detached(
    settings: Settings,
    req: CheckRssRequest,
    *,
    trigger: str = "cron",
    force_teams: bool = True,
) -> dict | None:
    """
    Entry point for background runs. Opens its own connection and never raises:
    errors end up in the run ledger (when it is reachable) and the log.
    """
    try:
        with db_conn() as conn:
            return execute_run(conn, settings, req, trigger=trigger, force_teams=force_teams)
    except Exception as exc:
        log_error("background_run_failed", trigger=trigger, error_type=type(exc).__name__, error=str(exc))
        return None
