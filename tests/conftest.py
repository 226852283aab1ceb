# tests/conftest.py
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from news_monitor.rss_fetch import FetchResult
from news_monitor.webhook import HttpResponse


SECRET = "test-signing-secret-that-is-long-enough-for-hs256"
WEBHOOK_PROD = "https://hooks.example.com/prod"
WEBHOOK_TEST = "https://hooks.example.com/test"
TEAMS_PROD = "https://teams.example.com/prod"
TEAMS_TEST = "https://teams.example.com/test"

# 11:00 in Berlin (winter time)
NOW = datetime(2026, 1, 14, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _isolate_db(tmp_path, monkeypatch):
    monkeypatch.setenv("NEWS_DB_PATH", str(tmp_path / "test.db"))


@pytest.fixture(autouse=True)
def _settings_env(monkeypatch):
    monkeypatch.setenv("WEBHOOK_URL_PRODUCTION", WEBHOOK_PROD)
    monkeypatch.setenv("WEBHOOK_URL_TEST", WEBHOOK_TEST)
    monkeypatch.setenv("TEAMS_WEBHOOK_URL_PRODUCTION", TEAMS_PROD)
    monkeypatch.setenv("TEAMS_WEBHOOK_URL_TEST", TEAMS_TEST)
    monkeypatch.setenv("TOKEN_SIGNING_SECRET", SECRET)
    monkeypatch.delenv("APP_PASSWORD_HASH", raising=False)
    monkeypatch.delenv("SYSTEM_TOKEN_ISSUER", raising=False)


@pytest.fixture
def fixed_now(monkeypatch):
    """Pin the orchestrator clock inside operating hours."""
    monkeypatch.setattr("news_monitor.check_rss.utcnow", lambda: NOW)
    return NOW


def rss(*items: str) -> str:
    return '<?xml version="1.0"?><rss version="2.0"><channel><title>Feed</title>' + "".join(items) + "</channel></rss>"


def rss_item(link: str, title: str = "Title", pub_date: str | None = "Wed, 14 Jan 2026 09:00:00 GMT") -> str:
    date = f"<pubDate>{pub_date}</pubDate>" if pub_date else ""
    return f"<item><title><![CDATA[{title}]]></title><link>{link}</link>{date}</item>"


class FakeFeeds:
    """Stands in for fetch_feed: url -> FetchResult, every call recorded."""

    def __init__(self):
        self.responses: dict[str, FetchResult] = {}
        self.calls: list[str] = []

    def set(self, url: str, content: str) -> None:
        self.responses[url] = FetchResult(ok=True, content=content, status=200)

    def fail(self, url: str, code: str = "FETCH_TRANSIENT") -> None:
        self.responses[url] = FetchResult(ok=False, error_code=code, error_message="boom")

    def __call__(self, url, *, timeout_s=25.0):
        self.calls.append(url)
        return self.responses.get(url, FetchResult(ok=True, content=rss(), status=200))


class FakeWebhook:
    """Stands in for post_json: url -> HttpResponse (or exception), every call recorded."""

    def __init__(self):
        self.responses: dict[str, object] = {}
        self.calls: list[tuple[str, dict, float]] = []

    def set(self, url: str, status: int = 200, body: str = '{"output":"ok"}') -> None:
        self.responses[url] = HttpResponse(status=status, body=body)

    def raise_for(self, url: str, exc: Exception) -> None:
        self.responses[url] = exc

    def calls_to(self, url: str) -> list[dict]:
        return [payload for u, payload, _ in self.calls if u == url]

    def __call__(self, url, payload, *, timeout_s):
        self.calls.append((url, payload, timeout_s))
        resp = self.responses.get(url, HttpResponse(status=200, body='{"output":"ok"}'))
        if isinstance(resp, Exception):
            raise resp
        return resp


@pytest.fixture
def feeds(monkeypatch):
    fake = FakeFeeds()
    monkeypatch.setattr("news_monitor.check_rss.fetch_feed", fake)
    return fake


@pytest.fixture
def webhook(monkeypatch):
    fake = FakeWebhook()
    monkeypatch.setattr("news_monitor.webhook.post_json", fake)
    return fake


@pytest.fixture
def conn():
    from news_monitor.db import get_conn, init_db

    c = get_conn()
    init_db(c)
    yield c
    c.close()


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from news_monitor.main import app, login_limiter

    login_limiter.reset()
    return TestClient(app)


@pytest.fixture
def auth_headers():
    from news_monitor.auth import issue_token

    return {"Authorization": f"Bearer {issue_token(SECRET)}"}
