# news_monitor/webhook.py
"""
Delivery of feed items to the automation webhook (primary) and to a Teams
channel webhook (secondary, best effort).

Failed deliveries are reported as a DeliveryResult with ok=False and a
response_text starting with WEBHOOK_ERROR_PREFIX. That text is what gets
stored, so the prefix must stay exactly as it is.
"""
from __future__ import annotations

import http.client
import json
import socket
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone

from news_monitor.error_codes import WEBHOOK_ERROR_PREFIX, WEBHOOK_NETWORK, WEBHOOK_TIMEOUT
from news_monitor.json_utils import extract_output
from news_monitor.logging_utils import log_event, log_error


PRIMARY_TIMEOUT_S = 35.0
TEAMS_TIMEOUT_S = 15.0

JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json, text/plain, */*",
}


class WebhookTransportError(Exception):
    """The request never produced an HTTP status (timeout, DNS, refused)."""

    def __init__(self, message: str, *, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout


@dataclass
class HttpResponse:
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


@dataclass
class DeliveryResult:
    ok: bool
    response_text: str
    status: int | None = None


def is_error_text(text: str | None) -> bool:
    """True when a stored response_text marks a failed delivery."""
    return bool(text) and text.startswith(WEBHOOK_ERROR_PREFIX)


def error_text(reason: int | str) -> str:
    return f"{WEBHOOK_ERROR_PREFIX} {reason}"


def post_json(url: str, payload: dict, *, timeout_s: float) -> HttpResponse:
    """
    POST a JSON payload. Non-2xx statuses are returned, not raised.

    Raises WebhookTransportError when no response arrives within timeout_s.
    """
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers=JSON_HEADERS,
        method="POST",
    )

    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            status = getattr(resp, "status", 200)
            body = resp.read().decode("utf-8", errors="replace")
            return HttpResponse(status=status, body=body)

    except urllib.error.HTTPError as exc:
        try:
            body = exc.read().decode("utf-8", errors="replace")
        except (OSError, AttributeError):
            body = ""
        return HttpResponse(status=exc.code, body=body)
    except urllib.error.URLError as exc:
        is_timeout = isinstance(exc.reason, (TimeoutError, socket.timeout))
        raise WebhookTransportError(f"webhook unreachable: {exc.reason}", timeout=is_timeout) from exc
    except TimeoutError as exc:
        raise WebhookTransportError("webhook timed out", timeout=True) from exc
    except (OSError, http.client.HTTPException) as exc:
        # Peer closed or reset the connection, or cut the body short
        raise WebhookTransportError(f"webhook connection failed: {type(exc).__name__}: {exc}") from exc


def _timestamp(now: datetime | None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def deliver(url: str, *, link: str, title: str | None, source: str | None, now: datetime | None = None) -> DeliveryResult:
    """Send one item to the primary webhook and turn the reply into a DeliveryResult."""
    payload = {
        "link": link,
        "title": title,
        "source": source,
        "timestamp": _timestamp(now),
    }

    try:
        resp = post_json(url, payload, timeout_s=PRIMARY_TIMEOUT_S)
    except WebhookTransportError as exc:
        reason = WEBHOOK_TIMEOUT if exc.timeout else WEBHOOK_NETWORK
        log_error("webhook_transport_failed", link=link, source=source, reason=reason, error=str(exc))
        return DeliveryResult(ok=False, response_text=error_text(reason))

    if not resp.ok:
        log_error("webhook_error", link=link, source=source, status=resp.status, body=resp.body[:200])
        return DeliveryResult(ok=False, response_text=error_text(resp.status), status=resp.status)

    text = extract_output(resp.body)
    log_event("webhook_ok", link=link, source=source, status=resp.status, preview=text[:100])
    return DeliveryResult(ok=True, response_text=text, status=resp.status)


def notify_teams(
    url: str,
    *,
    link: str,
    title: str | None,
    source: str | None,
    response_text: str,
    now: datetime | None = None,
) -> bool:
    """
    Forward a delivered item to Teams. Never raises.

    Returns True if Teams answered 2xx. The primary result is unaffected either way.
    """
    payload = {
        "link": link,
        "title": title,
        "source": source,
        "responseText": response_text,
        "timestamp": _timestamp(now),
    }

    try:
        resp = post_json(url, payload, timeout_s=TEAMS_TIMEOUT_S)
    except WebhookTransportError as exc:
        log_error("teams_failed", link=link, error=str(exc))
        return False
    except Exception as exc:
        # Anything else (bad URL, encoding) is still only a side channel
        log_error("teams_failed", link=link, error_type=type(exc).__name__, error=str(exc))
        return False

    if not resp.ok:
        log_error("teams_failed", link=link, status=resp.status)
        return False

    log_event("teams_ok", link=link, status=resp.status)
    return True
