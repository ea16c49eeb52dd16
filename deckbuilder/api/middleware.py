"""API middleware: CORS, request logging, and error handling.

# ─── MIDDLEWARE EXECUTION ORDER ───────────────────────────────────────
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)    # added 1st -> inner
#     app.add_middleware(RequestLoggingMiddleware)   # added 2nd -> outer
#
#   Request flow:
#     Client -> RequestLogging -> ErrorHandling -> route handler
#
# RequestLoggingMiddleware therefore sees the final status code, including
# the 422/502 produced by ErrorHandlingMiddleware, and its request_id is
# already bound when application_error is logged.
#
# Status mapping:
#     DeckBuildError, AgentLoopError   -> 422  (the request cannot be met)
#     any other DeckBuilderError       -> 502  (a collaborator failed)
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from deckbuilder.api.schemas import ErrorResponse
from deckbuilder.utils.errors import AgentLoopError, DeckBuildError, DeckBuilderError
from deckbuilder.utils.logging import get_logger, new_correlation_id

_logger: structlog.BoundLogger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]``.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration.

    A ``request_id`` (the caller's ``X-Request-ID`` header, or a fresh id)
    is bound to the structlog context for the whole request, so deck
    build events carry it too.  It is echoed back in the response header.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_correlation_id()
        start = time.perf_counter()
        response: Response | None = None

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
                response.headers[REQUEST_ID_HEADER] = request_id
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


def error_status(exc: DeckBuilderError) -> int:
    """HTTP status for a deck builder error."""
    if isinstance(exc, (DeckBuildError, AgentLoopError)):
        return 422
    return 502


def error_body(exc: DeckBuilderError) -> ErrorResponse:
    return ErrorResponse(
        error=type(exc).__name__,
        detail=str(exc),
        phase=exc.phase if isinstance(exc, DeckBuildError) else None,
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn ``DeckBuilderError`` subclasses into structured JSON errors.

    Stack traces stay in the server log; the client only sees the error
    type, its message, and the pipeline phase where there is one.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except DeckBuilderError as exc:
            status_code = error_status(exc)
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                phase=exc.phase if isinstance(exc, DeckBuildError) else None,
                status=status_code,
                path=str(request.url.path),
            )
            return JSONResponse(
                status_code=status_code,
                content=error_body(exc).model_dump(),
            )
