"""Middleware and exception handler registration."""

from fastapi import FastAPI

from ctfarena.config import Settings
from ctfarena.middleware.cors import setup_cors
from ctfarena.middleware.error_handler import setup_error_handlers
from ctfarena.middleware.logging import setup_logging
from ctfarena.middleware.rate_limit import RateLimitMiddleware
from ctfarena.middleware.request_id import RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Outermost first: CORS, request context, rate limit.

    Starlette wraps in reverse-add order, so CORS headers also land on 429s and
    the access log records rate-limited requests.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        guess_requests_per_window=settings.guess_rate_limit_requests,
    )
    app.add_middleware(RequestContextMiddleware, access_log=settings.access_log)
    setup_cors(app, settings)
