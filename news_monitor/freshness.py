"""
Freshness rules: which feed items get processed, and when runs happen at all.
Pure functions, no I/O.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from news_monitor.schemas import FeedItem


RECENCY_WINDOW = timedelta(hours=12)

OPERATING_TZ = "Europe/Berlin"
OPERATING_START_HOUR = 7
OPERATING_END_HOUR = 20


def is_recent(published_at: datetime | None, *, now: datetime, window: timedelta = RECENCY_WINDOW) -> bool:
    """Undated items count as recent. The window boundary is inclusive."""
    if published_at is None:
        return True
    if published_at.tzinfo is None:
        published_at = published_at.replace(tzinfo=timezone.utc)
    return published_at >= now - window


def is_new(link: str, existing_links: set[str]) -> bool:
    return link not in existing_links


def select_fresh(items: list[FeedItem], existing_links: set[str], *, now: datetime) -> list[FeedItem]:
    """Items not yet stored and published within the recency window. Order preserved."""
    return [
        item for item in items
        if is_new(item.link, existing_links) and is_recent(item.published_at, now=now)
    ]


def is_within_operating_hours(
    now: datetime,
    *,
    tz: str = OPERATING_TZ,
    start_hour: int = OPERATING_START_HOUR,
    end_hour: int = OPERATING_END_HOUR,
) -> bool:
    """True when the local hour in `tz` is in [start_hour, end_hour)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(ZoneInfo(tz))
    return start_hour <= local.hour < end_hour
