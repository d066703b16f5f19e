"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from api.errors import register_exception_handlers
from api.v1 import api_router
from core.config import settings
from services import RateLimitMiddleware, get_rate_limiter

API_PREFIX = "/api/v1"


def create_app() -> FastAPI:
    application = FastAPI(title="Feedgraph API", version=settings.api_version)
    application.add_middleware(
        RateLimitMiddleware,
        limiter_factory=get_rate_limiter,
        exempt_paths=(f"{API_PREFIX}/health",),
    )
    register_exception_handlers(application)
    application.include_router(api_router, prefix=API_PREFIX)
    return application
