"""Global error handlers: every failure leaves as ``{success: false, message}``."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ctfarena.errors import ArenaError, StoreInvariantViolation, StoreTransient
from ctfarena.schemas import envelope

logger = structlog.get_logger()


def _validation_errors(exc: RequestValidationError) -> list[dict]:
    """Keep the JSON-safe parts of pydantic's error list."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(ArenaError)
    async def arena_error_handler(request: Request, exc: ArenaError) -> JSONResponse:
        """Domain errors carry their own status and user-facing message."""
        if isinstance(exc, StoreInvariantViolation):
            logger.error("store_invariant_violation", path=request.url.path, error=exc.message)
            message = StoreInvariantViolation.default_message
        elif isinstance(exc, StoreTransient):
            logger.warning("store_transient", path=request.url.path, error=exc.message)
            message = exc.message
        else:
            message = exc.message
        return JSONResponse(status_code=exc.status_code, content=envelope(message, success=False))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with the standard envelope."""
        return JSONResponse(
            status_code=exc.status_code,
            content=envelope(str(exc.detail), success=False),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed input is a 400 with the field errors under ``data``."""
        return JSONResponse(
            status_code=400,
            content=envelope("Validation error", {"errors": _validation_errors(exc)}, success=False),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: always answer with the envelope."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content=envelope("Server error", success=False))
