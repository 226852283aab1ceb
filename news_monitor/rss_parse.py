# news_monitor/rss_parse.py
from __future__ import annotations

import html
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from news_monitor.schemas import FeedItem


ITEM_PATTERN = re.compile(r"<item(?:\s[^>]*)?>(.*?)</item>", re.DOTALL | re.IGNORECASE)


def _field_pattern(tag: str) -> re.Pattern[str]:
    # group 1: CDATA-wrapped value, group 2: plain value. Self-closing tags never match.
    open_tag = rf"<{tag}(?:\s[^>]*)?(?<!/)>"
    return re.compile(
        rf"{open_tag}\s*<!\[CDATA\[(.*?)\]\]>\s*</{tag}>|{open_tag}(.*?)</{tag}>",
        re.DOTALL | re.IGNORECASE,
    )


TITLE_PATTERN = _field_pattern("title")
LINK_PATTERN = _field_pattern("link")
PUBDATE_PATTERN = _field_pattern("pubDate")


def extract_field(block: str, pattern: re.Pattern[str]) -> str | None:
    """
    Return the first value of a field inside an item block, or None if absent.

    CDATA content is taken verbatim; plain content has HTML entities unescaped.
    """
    m = pattern.search(block)
    if m is None:
        return None
    if m.group(1) is not None:
        return m.group(1).strip()
    return html.unescape(m.group(2) or "").strip()


def parse_pub_date(raw: str | None) -> datetime | None:
    """
    Parse an RSS date (RFC 822) or ISO-8601 string into an aware datetime.

    Returns None for missing or unparseable input. Naive values are taken as UTC.
    """
    if not raw:
        return None

    parsed: datetime | None
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        parsed = None

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_feed(text: str) -> list[FeedItem]:
    """
    Extract items from feed markup. Best effort, never raises.

    Rules:
    - one FeedItem per <item>...</item> block, in document order
    - link required (missing or blank -> item dropped)
    - missing title -> ""
    - missing/unparseable pubDate -> published_at None
    """
    if not text:
        return []

    out: list[FeedItem] = []
    for m in ITEM_PATTERN.finditer(text):
        block = m.group(1)

        link = extract_field(block, LINK_PATTERN)
        if not link:
            continue

        title = extract_field(block, TITLE_PATTERN) or ""
        pub_date = extract_field(block, PUBDATE_PATTERN) or None

        out.append(
            FeedItem(
                title=title,
                link=link,
                published_at=parse_pub_date(pub_date),
                pub_date=pub_date,
            )
        )

    return out
