# news_monitor/feeds.py
"""Configured feed sources. Hardcoded, keyed by a short source key."""
from __future__ import annotations

from news_monitor.logging_utils import log_event


SOURCES: dict[str, dict[str, str]] = {
    "nius": {"name": "NIUS", "url": "https://nius.de/rss"},
    "tagesschau": {"name": "tagesschau", "url": "https://www.tagesschau.de/xml/rss2/"},
    "spiegel": {"name": "DER SPIEGEL", "url": "https://www.spiegel.de/schlagzeilen/index.rss"},
}


def select_sources(keys: list[str] | None) -> list[tuple[str, dict[str, str]]]:
    """
    Resolve a caller-supplied subset of source keys, preserving caller order.

    None means every configured source. Unknown keys are logged and skipped.
    """
    if keys is None:
        return list(SOURCES.items())

    out: list[tuple[str, dict[str, str]]] = []
    for key in keys:
        source = SOURCES.get(key)
        if source is None:
            log_event("unknown_source", source=key)
            continue
        if any(k == key for k, _ in out):
            continue
        out.append((key, source))
    return out
