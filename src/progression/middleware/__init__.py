"""Middleware registration."""

from fastapi import FastAPI

from progression.config import Settings
from progression.middleware.error_handler import setup_error_handlers
from progression.middleware.logging import setup_logging
from progression.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and request middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
