# Enable type hint syntax from future Python versions (allows using | for union types)
from __future__ import annotations

from dataclasses import dataclass

from news_monitor.error_codes import FETCH_TIMEOUT, FETCH_TRANSIENT, RATE_LIMITED, FETCH_PERMANENT

import http.client
import socket
# Import urllib modules for making HTTP requests
import urllib.request
import urllib.error


FEED_TIMEOUT_S = 25.0

# Some feeds reject unknown agents, so present as a generic reader
FEED_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; RSSReader/1.0)",
    "Accept": "application/rss+xml, application/xml, text/xml, */*",
}


# Raised by fetch_raw; fetch_feed turns it into a FetchResult
class RSSFetchError(Exception):
    """Raised when a feed cannot be fetched."""

    def __init__(self, message: str, *, status: int | None = None, timeout: bool = False):
        super().__init__(message)
        self.status = status
        self.timeout = timeout


@dataclass
class FetchResult:
    ok: bool
    content: str | None = None
    status: int | None = None
    error_code: str | None = None
    error_message: str | None = None


# Fetch the raw feed document - raises on any non-2xx or network failure
def fetch_raw(url: str, *, timeout_s: float = FEED_TIMEOUT_S) -> str:
    """Fetch a feed URL and return the decoded response body."""
    req = urllib.request.Request(url, headers=FEED_HEADERS)

    try:
        # The timeout bounds connect and each read; urlopen aborts the socket when it elapses
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            status = getattr(resp, "status", None)
            body = resp.read().decode("utf-8", errors="replace")

            if status is None or not 200 <= status < 300:
                raise RSSFetchError(f"RSS_FETCH_FAIL: HTTP {status}", status=status)

            return body

    # HTTP errors (404, 500, ...) carry the status code
    except urllib.error.HTTPError as exc:
        raise RSSFetchError(f"RSS_FETCH_FAIL: HTTP {exc.code}", status=exc.code) from exc
    # URLError wraps socket timeouts raised while connecting
    except urllib.error.URLError as exc:
        is_timeout = isinstance(exc.reason, (TimeoutError, socket.timeout))
        raise RSSFetchError(f"RSS_FETCH_FAIL: URL error: {exc.reason}", timeout=is_timeout) from exc
    # Timeouts raised while reading the body
    except TimeoutError as exc:
        raise RSSFetchError("RSS_FETCH_FAIL: timeout", timeout=True) from exc
    # Dropped or reset connections, truncated bodies
    except (OSError, http.client.HTTPException) as exc:
        raise RSSFetchError(f"RSS_FETCH_FAIL: connection error: {type(exc).__name__}: {exc}") from exc


# Fetch a feed and classify the failure instead of raising
def fetch_feed(url: str, *, timeout_s: float = FEED_TIMEOUT_S) -> FetchResult:
    """
    Fetch one feed. Never raises for HTTP or network failures.

    The caller treats ok=False as "zero items from this source" and moves on.
    """
    try:
        content = fetch_raw(url, timeout_s=timeout_s)
        return FetchResult(ok=True, content=content, status=200)

    except RSSFetchError as exc:
        msg = str(exc)
        if exc.timeout:
            return FetchResult(ok=False, error_code=FETCH_TIMEOUT, error_message=msg)
        if exc.status == 429:
            return FetchResult(ok=False, status=429, error_code=RATE_LIMITED, error_message=msg)
        # 4xx (non-429): the URL itself is wrong, retrying next run won't help
        if exc.status is not None and 400 <= exc.status < 500:
            return FetchResult(ok=False, status=exc.status, error_code=FETCH_PERMANENT, error_message=msg)
        # 5xx, odd statuses, DNS/connection failures
        return FetchResult(ok=False, status=exc.status, error_code=FETCH_TRANSIENT, error_message=msg)
