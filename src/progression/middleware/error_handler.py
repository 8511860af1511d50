"""Global error handlers: consistent JSON error responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from progression.errors import (
    ActivePairingExistsError,
    ConcurrencyConflictError,
    DuplicateIdError,
    MaintenanceLockError,
    ProgressionError,
    RecordNotFoundError,
    StoreUnavailableError,
)

logger = structlog.get_logger()

# Checked in order; the first matching class wins.
_STATUS_CODES: list[tuple[type[ProgressionError], int]] = [
    (RecordNotFoundError, 404),
    (DuplicateIdError, 409),
    (ConcurrencyConflictError, 409),
    (ActivePairingExistsError, 409),
    (MaintenanceLockError, 409),
    (StoreUnavailableError, 503),
]


def status_for(exc: ProgressionError) -> int:
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle validation errors with consistent JSON format."""
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": exc.errors()},
        )

    @app.exception_handler(ProgressionError)
    async def progression_exception_handler(request: Request, exc: ProgressionError) -> JSONResponse:
        """Map engine errors onto HTTP status codes."""
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("engine_error", path=request.url.path, method=request.method, error=str(exc), exc_info=exc)
            detail = "Backing store unavailable" if status_code == 503 else "Internal server error"
        else:
            logger.info("engine_rejected", path=request.url.path, status_code=status_code, error=str(exc))
            detail = str(exc)
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )
