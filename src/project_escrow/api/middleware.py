"""HTTP middleware: request tracing, domain error translation, CORS.

Stack, outermost first:
    RequestIDMiddleware     binds request_id to the log context, logs one
                            line per request and echoes X-Request-ID
    ErrorHandlerMiddleware  turns EscrowError subclasses into JSON errors
    CORSMiddleware          the marketplace web client (any origin in dev)

Every error body has the same shape: {"error": <code>, "message": <text>}.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from project_escrow.config import get_settings
from project_escrow.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConcurrencyConflictError,
    DuplicateOperationError,
    EscrowError,
    InvalidStateTransitionError,
    NotificationNotFoundError,
    ProjectNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from project_escrow.logging_config import (
    bind_request_context,
    get_logger,
    reset_request_context,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = get_logger(__name__)

# Most specific first; the first matching class wins.
_STATUS_BY_ERROR: tuple[tuple[type[EscrowError], int], ...] = (
    (ValidationError, 400),
    (InvalidStateTransitionError, 400),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (ProjectNotFoundError, 404),
    (UserNotFoundError, 404),
    (NotificationNotFoundError, 404),
    (ConcurrencyConflictError, 409),
    (DuplicateOperationError, 409),
)


def status_for(exc: EscrowError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": code, "message": message})


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every log line of a request with its X-Request-ID."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        reset_request_context()
        bind_request_context(request_id=request_id)

        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Translate EscrowError subclasses into JSON error bodies; 500 for anything else."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except InvalidStateTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                current=exc.current_state,
                attempted=exc.attempted_event,
                error=exc.message,
            )
            return error_response(status_for(exc), exc.code, exc.message)
        except AuthorizationError as exc:
            logger.warning(
                "escrow.forbidden",
                project_id=exc.project_id,
                required_role=exc.required_role,
            )
            return error_response(status_for(exc), exc.code, exc.message)
        except EscrowError as exc:
            status_code = status_for(exc)
            log = logger.warning if status_code < 500 else logger.error
            log("domain.error", error=exc.message, code=exc.code, status=status_code)
            return error_response(status_code, exc.code, exc.message)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies with the same code as domain validation."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    message = "; ".join(problems) or "Invalid request"
    logger.warning("request.validation_failed", error=message)
    return error_response(400, "VALIDATION_ERROR", message)


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register the exception handler and the middleware stack.

    Starlette wraps each added middleware around the previous ones, so the
    last one added sees the request first.
    """
    settings = get_settings()
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    origins = ["*"] if settings.is_development else [settings.frontend_url]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
