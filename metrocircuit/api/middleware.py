"""API middleware: CORS, request logging and last-resort error handling.

Starlette runs middleware last-added first, so ``main.py`` adds
``ErrorHandlingMiddleware`` before ``RequestLoggingMiddleware`` and the
request log sees the final status code.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from metrocircuit.api.schemas import ErrorResponse
from metrocircuit.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; every origin is allowed unless *allowed_origins* is given."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn unexpected exceptions into ``{"error": "Internal server error"}``.

    Application errors are answered by the action route itself; anything
    reaching this layer is a bug, so the traceback is logged server-side and
    the client gets a generic message.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            _logger.exception(
                "unhandled_error",
                error_type=type(exc).__name__,
                path=str(request.url.path),
            )
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(error="Internal server error").model_dump(),
            )
