from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ProblemDetails(BaseModel):
    success: bool = False
    status: int
    code: str
    message: str
    request_id: str | None = None
    run_id: str | None = None


def problem(*, status: int, code: str, message: str, request_id: str | None, run_id: str | None = None) -> ProblemDetails:
    return ProblemDetails(status=status, code=code, message=message, request_id=request_id, run_id=run_id)


def problem_response(
    *,
    status: int,
    code: str,
    message: str,
    request_id: str | None,
    run_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """ProblemDetails as a JSONResponse, echoing the request id header."""
    payload = problem(status=status, code=code, message=message, request_id=request_id, run_id=run_id)
    resp = JSONResponse(status_code=status, content=payload.model_dump(exclude_none=True), headers=headers)
    if request_id:
        resp.headers["X-Request-ID"] = request_id
    return resp
