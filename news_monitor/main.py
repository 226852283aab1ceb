# Load .env file BEFORE other imports (so env vars are available)
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request, HTTPException, Header
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from news_monitor.middleware import request_id_middleware
from news_monitor.logging_utils import log_event, log_error
from news_monitor.errors import problem_response

from news_monitor.auth import (
    TokenError, bearer_token, is_system_token, issue_token, verify_password, verify_token,
)
from news_monitor.background import RunQueue
from news_monitor.check_rss import execute_run, execute_run_detached, trigger_for, utcnow
from news_monitor.config import ConfigError, Settings
from news_monitor.db import db_conn
from news_monitor.freshness import is_within_operating_hours
from news_monitor.rate_limit import LoginRateLimiter, client_key
from news_monitor.repo import (
    delete_all_articles, delete_article, get_latest_run, list_articles, list_runs,
)
from news_monitor.schemas import CheckRssRequest, DeleteNewsRequest, PasswordRequest, TokenRequest
from news_monitor.webhook import is_error_text


app = FastAPI(title="news-monitor")

#Register middleware
app.middleware("http")(request_id_middleware)

# Cron-triggered runs execute here, detached from the request
run_queue = RunQueue()

login_limiter = LoginRateLimiter()


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def require_token(request: Request, settings: Settings) -> dict:
    """
    Interactive tier: a dashboard token signed with TOKEN_SIGNING_SECRET.

    Raises:
        HTTPException 401 if the header is missing or the token is invalid/expired.
        ConfigError if the signing secret is not configured.
    """
    token = bearer_token(request.headers.get("authorization"))
    if token is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    secret = settings.signing_secret()
    try:
        return verify_token(token, secret)
    except TokenError as exc:
        log_event("token_rejected", request_id=_request_id(request), reason=str(exc))
        raise HTTPException(status_code=401, detail="Invalid or expired token")


@app.get("/health")
def health(request: Request):
    return {"status": "ok"}


# --- check-rss ---

@app.post("/check-rss")
def check_rss(
    request: Request,
    body: CheckRssRequest | None = None,
    authorization: str | None = Header(None),
):
    """
    Run the feed check, or retry one stored article.

    Scheduler keys get 202 immediately and the run continues in the background
    with Teams notifications on. Everyone else needs a valid dashboard token and
    waits for the result.
    """
    request_id = _request_id(request)
    settings = Settings.from_env()
    req = body or CheckRssRequest()

    token = bearer_token(authorization)
    if is_system_token(token, issuer=settings.system_token_issuer):
        trigger = trigger_for(req, system=True)
        run_queue.submit(execute_run_detached, settings, req, trigger=trigger, force_teams=True)
        log_event("check_rss_accepted", request_id=request_id, trigger=trigger)
        return JSONResponse(status_code=202, content={"success": True, "accepted": True})

    require_token(request, settings)

    trigger = trigger_for(req, system=False)
    log_event("check_rss_started", request_id=request_id, trigger=trigger, sources=req.sources)
    with db_conn() as conn:
        result = execute_run(conn, settings, req, trigger=trigger)

    request.state.run_id = result.get("run_id")
    log_event("check_rss_finished", request_id=request_id, run_id=result.get("run_id"), success=result["success"])
    return result


# --- Auth Endpoints ---

@app.post("/auth/verify-password")
def auth_verify_password(request: Request, body: PasswordRequest):
    """
    Check the dashboard password and hand out a signed token.

    Repeated failures from one client trigger a temporary lockout (429).
    """
    request_id = _request_id(request)
    settings = Settings.from_env()
    key = client_key(request.headers, request.client.host if request.client else None)

    decision = login_limiter.check(key)
    if not decision.allowed:
        log_event("login_rate_limited", request_id=request_id, retry_after=decision.retry_after)
        return problem_response(
            status=429,
            code="rate_limited",
            message="Too many login attempts. Please try again later.",
            request_id=request_id,
            headers={"Retry-After": str(decision.retry_after)},
        )

    if not settings.app_password_hash:
        raise ConfigError("APP_PASSWORD_HASH is not configured")

    ok = verify_password(body.password, settings.app_password_hash)
    login_limiter.record(key, success=ok)
    log_event("login_attempt", request_id=request_id, success=ok)

    if not ok:
        return {"success": False}

    return {"success": True, "token": issue_token(settings.signing_secret())}


@app.post("/auth/validate-token")
def auth_validate_token(body: TokenRequest):
    settings = Settings.from_env()
    if not body.token or not settings.token_signing_secret:
        return {"valid": False}
    try:
        verify_token(body.token, settings.token_signing_secret)
    except TokenError:
        return {"valid": False}
    return {"valid": True}


# --- Articles + runs (dashboard API) ---

@app.get("/api/news")
def api_news(request: Request, failed: bool | None = None, limit: int = 200):
    settings = Settings.from_env()
    require_token(request, settings)
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be >= 1")

    with db_conn() as conn:
        items = list_articles(conn, failed=failed, limit=limit)

    for item in items:
        item["has_error"] = is_error_text(item["response_text"])
    return {"items": items, "count": len(items)}


@app.post("/news/delete")
def delete_news(request: Request, body: DeleteNewsRequest | None = None):
    settings = Settings.from_env()
    require_token(request, settings)
    req = body or DeleteNewsRequest()

    if req.delete_all:
        with db_conn() as conn:
            deleted = delete_all_articles(conn)
        log_event("news_deleted_all", request_id=_request_id(request), deleted=deleted)
        return {"success": True, "message": "All items deleted", "deleted": deleted}

    if req.item_id:
        with db_conn() as conn:
            deleted = delete_article(conn, article_id=req.item_id)
        log_event("news_deleted", request_id=_request_id(request), item_id=req.item_id, deleted=deleted)
        return {"success": True, "message": "Item deleted", "deleted": deleted}

    raise HTTPException(status_code=400, detail="No deleteAll or itemId specified")


@app.get("/api/runs")
def api_runs(request: Request, limit: int = 20):
    settings = Settings.from_env()
    require_token(request, settings)
    if limit < 1:
        raise HTTPException(status_code=400, detail="limit must be >= 1")
    with db_conn() as conn:
        runs = list_runs(conn, limit=limit)
    return {"runs": runs}


@app.get("/api/status")
def api_status(request: Request):
    """Whether scheduled checks are currently active, plus the latest runs."""
    settings = Settings.from_env()
    require_token(request, settings)
    with db_conn() as conn:
        last_run = get_latest_run(conn)
        last_ok = get_latest_run(conn, successful_only=True)
    return {
        "active": is_within_operating_hours(utcnow()),
        "last_run": last_run,
        "last_successful_run": last_ok,
    }


# --- Error handlers ---

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    rid = _request_id(request)
    run_id = getattr(request.state, "run_id", None)
    log_event("http_error", request_id=rid, run_id=run_id, status=exc.status_code, message=str(exc.detail))
    return problem_response(
        status=exc.status_code,
        code="http_error",
        message=str(exc.detail),
        request_id=rid,
        run_id=run_id,
    )


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    rid = _request_id(request)
    # The missing setting goes to the log only
    log_error("config_error", request_id=rid, error=str(exc))
    return problem_response(
        status=500,
        code="config_error",
        message="Server configuration error",
        request_id=rid,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return ProblemDetails for Pydantic validation errors."""
    rid = _request_id(request)

    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(str(x) for x in first.get("loc", []))  #e.g., "body.webhookMode"
        msg = first.get("msg", "Validation error")
        message = f"{loc}: {msg}"
    else:
        message = "Validation error"

    log_event("validation_error", request_id=rid, message=message)
    return problem_response(status=422, code="validation_error", message=message, request_id=rid)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _request_id(request)
    run_id = getattr(request.state, "run_id", None)
    # Don't leak details to the client, but do log them
    log_error("internal_error", request_id=rid, run_id=run_id, error_type=type(exc).__name__, error=str(exc))
    return problem_response(
        status=500,
        code="internal_error",
        message="Internal server error",
        request_id=rid,
        run_id=run_id,
    )
