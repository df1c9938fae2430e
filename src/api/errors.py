"""Exception handlers — render every failure as the JSON error envelope."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.core.constants import SECURITY_HEADERS
from src.core.exceptions import AccountLockedError, AffilifyError, RateLimitedError, ValidationError
from src.core.logging import get_logger

log = get_logger(__name__)


def error_response(
    status_code: int,
    error: str,
    code: str,
    details: list[dict[str, str]] | None = None,
    headers: dict[str, str] | None = None,
    **extra: object,
) -> JSONResponse:
    body: dict[str, object] = {"success": False, "error": error, "code": code}
    if details:
        body["details"] = details
    body.update(extra)
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={**SECURITY_HEADERS, **(headers or {})},
    )


def _field_errors(exc: RequestValidationError) -> list[dict[str, str]]:
    details = []
    for err in exc.errors():
        # Drop the leading "body" location FastAPI adds.
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        details.append({"field": ".".join(loc), "message": str(err.get("msg", ""))})
    return details


async def _handle_affilify_error(request: Request, exc: AffilifyError) -> JSONResponse:
    log_ctx = {"path": request.url.path, "code": exc.code, **exc.context}
    if exc.status_code >= 500:
        log.error("request_failed", **log_ctx)
    else:
        log.info("request_rejected", **log_ctx)

    if isinstance(exc, ValidationError):
        return error_response(exc.status_code, exc.message, exc.code, exc.details)
    if isinstance(exc, AccountLockedError):
        return error_response(
            exc.status_code, exc.message, exc.code, lockTimeRemaining=exc.minutes_remaining,
        )
    if isinstance(exc, RateLimitedError):
        return error_response(
            exc.status_code,
            exc.message,
            exc.code,
            headers={"Retry-After": str(exc.retry_after)},
            retryAfter=exc.retry_after,
        )
    return error_response(exc.status_code, exc.message, exc.code)


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _field_errors(exc)
    log.info("request_validation_failed", path=request.url.path, fields=[d["field"] for d in details])
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        ValidationError.public_message,
        ValidationError.code,
        details,
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    log.exception("unhandled_error", path=request.url.path, error=type(exc).__name__)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        AffilifyError.public_message,
        AffilifyError.code,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AffilifyError, _handle_affilify_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_request_validation)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected)
