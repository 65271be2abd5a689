"""API layer — Request middleware.

- Request ID injection (X-Request-ID header) and log-context binding
- Structured access logging
- Optional request body dump (``logging.dump_requests``)
- Global exception handlers → clean ErrorResponse
"""

from __future__ import annotations

import time
import uuid
from typing import Any

from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from pihub.api.schemas import ErrorResponse
from pihub.exceptions import (
    ConfigValidationError,
    DecodeError,
    HardwareError,
    ModuleStateError,
    PiHubError,
    UnknownActionError,
    UnknownModuleError,
    UnknownSourceError,
)
from pihub.logging import bind_request_context, clear_request_context, get_logger

log = get_logger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_MAP: list[tuple[type[PiHubError], int, str]] = [
    (UnknownModuleError, 404, "unknown_module"),
    (UnknownActionError, 404, "unknown_action"),
    (UnknownSourceError, 404, "unknown_source"),
    (DecodeError, 400, "decode_error"),
    (ConfigValidationError, 422, "validation_error"),
    (HardwareError, 500, "hardware_error"),
    (ModuleStateError, 500, "module_state_error"),
]


def status_for(exc: BaseException) -> tuple[int, str]:
    """Return the ``(http_status, error_code)`` pair for *exc*."""
    for exc_type, status_code, code in _STATUS_MAP:
        if isinstance(exc, exc_type):
            return status_code, code
    return 500, "internal_error"


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    detail: Any = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=message,
        code=code,
        detail=detail or None,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Request-ID to every request and response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        bind_request_context(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log each request with timing information."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 2)

        log.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
            request_id=getattr(request.state, "request_id", None),
        )
        return response


class RequestDumpMiddleware(BaseHTTPMiddleware):
    """Log every request body at debug level.  Enabled by ``logging.dump_requests``."""

    def __init__(self, app: Any, max_bytes: int = 4096) -> None:
        super().__init__(app)
        self._max_bytes = max_bytes

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        body = await request.body()
        log.debug(
            "http_request_dump",
            method=request.method,
            path=request.url.path,
            headers=dict(request.headers),
            body=body[: self._max_bytes].decode("utf-8", errors="replace"),
            truncated=len(body) > self._max_bytes,
        )
        return await call_next(request)


def build_error_handler() -> Any:
    """Return a FastAPI exception handler for PiHubError subclasses."""

    async def handler(request: Request, exc: PiHubError) -> JSONResponse:
        status_code, code = status_for(exc)
        if status_code >= 500:
            log.error("request_failed", code=code, error=exc)
        else:
            log.info("request_rejected", code=code, error=exc.message)
        return error_response(request, status_code, code, exc.message, exc.context)

    return handler


def build_validation_handler() -> Any:
    """Return a handler rendering malformed request envelopes as ErrorResponse (422)."""

    async def handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": [str(p) for p in e.get("loc", ())], "type": e.get("type"), "msg": e.get("msg")}
            for e in exc.errors()
        ]
        return error_response(
            request, 422, "invalid_request", "Malformed request body", {"errors": errors}
        )

    return handler


def build_fallback_handler() -> Any:
    """Return a handler for unexpected exceptions (500, ``internal_error``)."""

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled_exception", error=exc)
        return error_response(request, 500, "internal_error", "Internal server error")

    return handler
