import time
import uuid

from fastapi import Request

from news_monitor.logging_utils import log_event


async def request_id_middleware(request: Request, call_next):
    # One id per request, visible to handlers and echoed back to the caller
    request_id = uuid.uuid4().hex
    request.state.request_id = request_id

    t0 = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = int((time.perf_counter() - t0) * 1000)

    response.headers["X-Request-ID"] = request_id
    log_event(
        "request_finished",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        latency_ms=elapsed_ms,
    )
    return response
