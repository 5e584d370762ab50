from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from .errors import GymAccessError, StorageUnavailableError


QUIET_PATHS = ("/health",)


class RequestTimingLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request and tags the response with 'X-Request-Id' and 'X-Process-Time-Ms'.

    Only the path is logged, never the query string or body, so QR secrets cannot leak into
    request logs. Health probes are logged at DEBUG to keep door-terminal traffic readable.
    """

    def __init__(self, app: ASGIApp) -> None:
        super().__init__(app)
        self.logger = logging.getLogger("request")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        response.headers["X-Process-Time-Ms"] = str(duration_ms)
        response.headers["X-Request-Id"] = request_id

        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        self.logger.log(
            level,
            "request_id=%s method=%s path=%s status=%s duration_ms=%s ip=%s",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request.client.host if request.client else "?",
        )
        return response


def _error_payload(status: int, message: str, path: str, **extra) -> dict:
    error = {"status": status, "message": message, "path": path}
    error.update(extra)
    return {"ok": False, "error": error}


def add_exception_handlers(app: FastAPI) -> None:
    """Register consistent error payload shapes for HTTP, domain and generic exceptions."""

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else ""
        return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.status_code, message, request.url.path))

    @app.exception_handler(StorageUnavailableError)
    async def storage_exception_handler(request: Request, exc: StorageUnavailableError):
        logging.getLogger("error").warning(
            "storage failure path=%s retryable=%s cause=%r", request.url.path, exc.retryable, exc.cause
        )
        payload = _error_payload(exc.status_code, exc.message, request.url.path, retryable=exc.retryable)
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(GymAccessError)
    async def domain_exception_handler(request: Request, exc: GymAccessError):
        return JSONResponse(status_code=exc.status_code, content=_error_payload(exc.status_code, exc.message, request.url.path))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Do not leak internals; keep it simple.
        logging.getLogger("error").exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content=_error_payload(500, "Internal server error", request.url.path))
