# tests/test_check_rss.py
from __future__ import annotations

import http.client
import json
from datetime import datetime, timezone

import pytest

from news_monitor.check_rss import execute_run, run_check
from news_monitor.config import ConfigError, Settings
from news_monitor.feeds import SOURCES
from news_monitor.repo import get_all_links, get_article_by_id, insert_article, list_runs
from news_monitor.rss_fetch import FetchResult
from news_monitor.schemas import CheckRssRequest, RetryItem
from news_monitor.webhook import HttpResponse
from tests.conftest import NOW, TEAMS_PROD, TEAMS_TEST, WEBHOOK_PROD, WEBHOOK_TEST, rss, rss_item


NIUS = SOURCES["nius"]["url"]
TAGESSCHAU = SOURCES["tagesschau"]["url"]
SPIEGEL = SOURCES["spiegel"]["url"]


def _settings() -> Settings:
    return Settings.from_env()


def test_delivered_item_is_stored(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1", title="Eins")))

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert result["success"] is True
    assert result["processed"] == 1
    assert result["total_in_feed"] == 1
    assert result["message"] == "Processed 1 new items"
    assert result["sources"] == {"nius": {"processed": 1, "total": 1}}

    assert get_all_links(conn) == {"https://n.example/1"}
    stored = conn.execute("SELECT title, response_text, published_at FROM news_items").fetchone()
    assert stored == ("Eins", "ok", "2026-01-14T09:00:00+00:00")

    [payload] = webhook.calls_to(WEBHOOK_PROD)
    assert payload["link"] == "https://n.example/1"
    assert payload["title"] == "Eins"
    assert payload["source"] == SOURCES["nius"]["name"]
    assert payload["timestamp"] == NOW.isoformat()


def test_failed_delivery_is_not_stored_and_run_still_succeeds(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))
    webhook.set(WEBHOOK_PROD, status=502, body="bad gateway")

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert result["success"] is True
    assert result["processed"] == 0
    assert result["sources"]["nius"] == {"processed": 0, "total": 1}
    assert get_all_links(conn) == set()


def test_failed_item_is_retried_on_next_run(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))
    webhook.set(WEBHOOK_PROD, status=500, body="")
    run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    webhook.set(WEBHOOK_PROD)
    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert result["processed"] == 1
    assert len(webhook.calls_to(WEBHOOK_PROD)) == 2


def test_second_run_delivers_nothing_new(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1"), rss_item("https://n.example/2")))

    first = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))
    second = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert first["processed"] == 2
    assert second["processed"] == 0
    assert second["total_in_feed"] == 2
    assert len(webhook.calls_to(WEBHOOK_PROD)) == 2


def test_stale_and_undated_items(conn, feeds, webhook, fixed_now):
    feeds.set(
        NIUS,
        rss(
            rss_item("https://n.example/stale", pub_date="Tue, 13 Jan 2026 21:59:59 GMT"),
            rss_item("https://n.example/edge", pub_date="Tue, 13 Jan 2026 22:00:00 GMT"),
            rss_item("https://n.example/undated", pub_date=None),
        ),
    )

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert result["processed"] == 2
    assert result["total_in_feed"] == 3
    assert get_all_links(conn) == {"https://n.example/edge", "https://n.example/undated"}


def test_outside_operating_hours_does_nothing(conn, feeds, webhook):
    # 21:30 in Berlin
    late = datetime(2026, 1, 14, 20, 30, tzinfo=timezone.utc)

    result = run_check(conn, _settings(), CheckRssRequest(), now=late)

    assert result == {
        "success": True,
        "message": "Outside operating hours (7:00-20:00)",
        "processed": 0,
        "total_in_feed": 0,
        "sources": {},
    }
    assert feeds.calls == []
    assert webhook.calls == []


def test_outside_hours_wins_over_missing_webhook(conn, feeds, webhook, monkeypatch):
    monkeypatch.delenv("WEBHOOK_URL_PRODUCTION")
    early = datetime(2026, 1, 14, 5, 0, tzinfo=timezone.utc)

    result = run_check(conn, _settings(), CheckRssRequest(), now=early)

    assert result["processed"] == 0


def test_same_link_in_two_feeds_is_delivered_once(conn, feeds, webhook, fixed_now):
    shared = rss_item("https://shared.example/story")
    feeds.set(NIUS, rss(shared))
    feeds.set(TAGESSCHAU, rss(shared))

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius", "tagesschau"]))

    assert result["processed"] == 1
    assert result["sources"]["nius"]["processed"] == 1
    assert result["sources"]["tagesschau"] == {"processed": 0, "total": 1}
    assert len(webhook.calls_to(WEBHOOK_PROD)) == 1


def test_duplicate_link_within_one_feed(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1"), rss_item("https://n.example/1")))

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert result["processed"] == 1
    assert len(webhook.calls_to(WEBHOOK_PROD)) == 1


def test_fetch_failure_is_isolated_to_its_source(conn, feeds, webhook, fixed_now):
    feeds.fail(NIUS, code="FETCH_TIMEOUT")
    feeds.set(SPIEGEL, rss(rss_item("https://s.example/1")))

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius", "spiegel"]))

    assert result["success"] is True
    assert result["sources"]["nius"] == {"processed": 0, "total": 0}
    assert result["sources"]["spiegel"] == {"processed": 1, "total": 1}
    assert feeds.calls == [NIUS, SPIEGEL]


def test_all_sources_by_default_in_configured_order(conn, feeds, webhook, fixed_now):
    result = run_check(conn, _settings(), CheckRssRequest())

    assert feeds.calls == [NIUS, TAGESSCHAU, SPIEGEL]
    assert set(result["sources"]) == {"nius", "tagesschau", "spiegel"}


def test_unknown_sources_are_skipped(conn, feeds, webhook, fixed_now):
    result = run_check(conn, _settings(), CheckRssRequest(sources=["bild", "spiegel"]))

    assert feeds.calls == [SPIEGEL]
    assert list(result["sources"]) == ["spiegel"]


def test_test_mode_uses_test_webhook(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))

    run_check(conn, _settings(), CheckRssRequest(sources=["nius"], webhookMode="test"))

    assert len(webhook.calls_to(WEBHOOK_TEST)) == 1
    assert webhook.calls_to(WEBHOOK_PROD) == []


def test_missing_webhook_is_a_config_error(conn, feeds, webhook, fixed_now, monkeypatch):
    monkeypatch.delenv("WEBHOOK_URL_PRODUCTION")

    with pytest.raises(ConfigError):
        run_check(conn, _settings(), CheckRssRequest())
    assert feeds.calls == []


def test_teams_notified_after_successful_delivery(conn, feeds, webhook, fixed_now, monkeypatch):
    feeds.set(NIUS, rss(rss_item("https://n.example/1"), rss_item("https://n.example/2")))
    statuses = {"https://n.example/1": 200, "https://n.example/2": 502}

    def post(url, payload, *, timeout_s):
        webhook.calls.append((url, payload, timeout_s))
        if url == WEBHOOK_PROD:
            status = statuses[payload["link"]]
            return HttpResponse(status=status, body='{"output":"sent"}' if status == 200 else "")
        return HttpResponse(status=200, body="1")

    monkeypatch.setattr("news_monitor.webhook.post_json", post)

    run_check(conn, _settings(), CheckRssRequest(sources=["nius"], teamsEnabled=True, teamsMode="test"))

    [teams] = webhook.calls_to(TEAMS_TEST)
    assert teams["link"] == "https://n.example/1"
    assert teams["responseText"] == "sent"
    assert teams["source"] == SOURCES["nius"]["name"]
    assert webhook.calls_to(TEAMS_PROD) == []


def test_teams_off_unless_enabled(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))

    run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert webhook.calls_to(TEAMS_PROD) == []


def test_forced_teams_uses_teams_mode(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))

    run_check(conn, _settings(), CheckRssRequest(sources=["nius"]), force_teams=True)

    assert len(webhook.calls_to(TEAMS_PROD)) == 1


def test_teams_failure_does_not_affect_the_run(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))
    webhook.raise_for(TEAMS_PROD, RuntimeError("teams down"))

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"], teamsEnabled=True))

    assert result["processed"] == 1
    assert get_all_links(conn) == {"https://n.example/1"}


def test_missing_teams_url_skips_notification(conn, feeds, webhook, fixed_now, monkeypatch):
    monkeypatch.delenv("TEAMS_WEBHOOK_URL_PRODUCTION")
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"], teamsEnabled=True))

    assert result["processed"] == 1
    assert [u for u, _, _ in webhook.calls] == [WEBHOOK_PROD]


# --- retry ---

def _stored(conn, link="https://n.example/1", response_text="Webhook error: 502"):
    return insert_article(
        conn,
        link=link,
        title="Eins",
        response_text=response_text,
        processed_at=datetime(2026, 1, 14, 8, 0, tzinfo=timezone.utc),
        published_at=None,
    )


def test_retry_success_overwrites_response(conn, feeds, webhook, fixed_now):
    article_id = _stored(conn)
    webhook.set(WEBHOOK_PROD, body='[{"output": "done"}]')
    req = CheckRssRequest(retryItem=RetryItem(id=article_id, link="https://n.example/1", title="Eins"))

    result = run_check(conn, _settings(), req)

    assert result == {"success": True, "message": "Retry successful", "response_text": "done"}
    row = get_article_by_id(conn, article_id=article_id)
    assert row["response_text"] == "done"
    assert row["processed_at"] == NOW.isoformat()
    assert feeds.calls == []
    [payload] = webhook.calls_to(WEBHOOK_PROD)
    assert payload["source"] is None


def test_retry_failure_stores_error_text(conn, feeds, webhook, fixed_now):
    article_id = _stored(conn, response_text="old reply")
    webhook.set(WEBHOOK_PROD, status=503, body="")
    req = CheckRssRequest(retryItem={"id": article_id, "link": "https://n.example/1"})

    result = run_check(conn, _settings(), req)

    assert result["success"] is False
    assert result["message"] == "Retry failed"
    assert get_article_by_id(conn, article_id=article_id)["response_text"] == "Webhook error: 503"


def test_retry_ignores_operating_hours(conn, feeds, webhook):
    article_id = _stored(conn)
    night = datetime(2026, 1, 14, 23, 0, tzinfo=timezone.utc)
    req = CheckRssRequest(retryItem={"id": article_id, "link": "https://n.example/1"})

    result = run_check(conn, _settings(), req, now=night)

    assert result["success"] is True


def test_retry_notifies_teams_when_enabled(conn, feeds, webhook, fixed_now):
    article_id = _stored(conn)
    req = CheckRssRequest(retryItem={"id": article_id, "link": "https://n.example/1"}, teamsEnabled=True)

    run_check(conn, _settings(), req)

    assert len(webhook.calls_to(TEAMS_PROD)) == 1


# --- ledger bracketing ---

def test_execute_run_records_the_run(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1")))

    result = execute_run(conn, _settings(), CheckRssRequest(sources=["nius"]), trigger="manual")

    [run] = list_runs(conn)
    assert result["run_id"] == run["id"]
    assert run["trigger"] == "manual"
    assert run["success"] is True
    assert run["processed"] == 1
    assert run["message"] == "Processed 1 new items"
    assert run["finished_at"] is not None


def test_execute_run_records_outside_hours(conn, feeds, webhook):
    import news_monitor.check_rss as check_rss

    night = datetime(2026, 1, 14, 22, 0, tzinfo=timezone.utc)
    execute_run(conn, _settings(), CheckRssRequest(), trigger="cron", now=night)

    [run] = list_runs(conn)
    assert run["success"] is True
    assert run["processed"] == 0
    assert run["message"] == check_rss.OUTSIDE_HOURS_MESSAGE


def test_execute_run_records_failure_and_reraises(conn, feeds, webhook, fixed_now, monkeypatch):
    monkeypatch.delenv("WEBHOOK_URL_PRODUCTION")

    with pytest.raises(ConfigError):
        execute_run(conn, _settings(), CheckRssRequest(), trigger="cron")

    [run] = list_runs(conn)
    assert run["success"] is False
    assert run["error"].startswith("ConfigError:")
    assert run["finished_at"] is not None


def test_execute_run_retry_counts_one(conn, feeds, webhook, fixed_now):
    article_id = _stored(conn)
    req = CheckRssRequest(retryItem={"id": article_id, "link": "https://n.example/1"})

    execute_run(conn, _settings(), req, trigger="retry")

    [run] = list_runs(conn)
    assert run["trigger"] == "retry"
    assert run["processed"] == 1
    assert run["message"] == "Retry successful"


def test_execute_run_rejects_unknown_trigger(conn):
    with pytest.raises(ValueError):
        execute_run(conn, _settings(), CheckRssRequest(), trigger="webhook")


def test_unparseable_feed_counts_nothing(conn, feeds, webhook, fixed_now):
    feeds.responses[NIUS] = FetchResult(ok=True, content="not xml at all", status=200)

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert result["sources"]["nius"] == {"processed": 0, "total": 0}



# ---------- dropped connections (real urllib paths, urlopen faked) ----------

class FakeUrlopenResponse:
    status = 200

    def __init__(self, body: bytes):
        self._body = body

    def read(self) -> bytes:
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


def test_dropped_feed_connection_does_not_stop_later_sources(conn, webhook, fixed_now, monkeypatch):
    def fake_urlopen(req, timeout):
        if req.full_url == NIUS:
            raise http.client.RemoteDisconnected("Remote end closed connection without response")
        return FakeUrlopenResponse(rss(rss_item("https://t.example/1")).encode("utf-8"))

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius", "tagesschau"]))

    assert result["success"] is True
    assert result["sources"]["nius"] == {"processed": 0, "total": 0}
    assert result["sources"]["tagesschau"] == {"processed": 1, "total": 1}


def test_dropped_webhook_connection_skips_only_that_item(conn, feeds, fixed_now, monkeypatch):
    feeds.set(NIUS, rss(rss_item("https://n.example/1"), rss_item("https://n.example/2")))

    def fake_urlopen(req, timeout):
        if json.loads(req.data)["link"] == "https://n.example/1":
            raise ConnectionResetError(104, "Connection reset by peer")
        return FakeUrlopenResponse(b'{"output":"ok"}')

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)

    result = run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    assert result["success"] is True
    assert result["processed"] == 1
    assert get_all_links(conn) == {"https://n.example/2"}


def test_retry_unknown_article_is_not_sent(conn, feeds, webhook, fixed_now):
    req = CheckRssRequest(retryItem={"id": "gone", "link": "https://n.example/1"}, teamsEnabled=True)

    result = run_check(conn, _settings(), req)

    assert result["success"] is False
    assert result["message"] == "Article not found"
    assert webhook.calls == []


def test_published_at_is_stored_in_utc(conn, feeds, webhook, fixed_now):
    feeds.set(NIUS, rss(rss_item("https://n.example/1", pub_date="Wed, 14 Jan 2026 10:30:00 +0100")))

    run_check(conn, _settings(), CheckRssRequest(sources=["nius"]))

    stored = conn.execute("SELECT published_at FROM news_items").fetchone()[0]
    assert stored == "2026-01-14T09:30:00+00:00"
