"""
PayFlow API - Application Factory

Bill tracking with per-user ownership. Components are built once per app
and hung on ``app.state``; routes get them through ``payflow.core.deps``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from payflow import __version__
from payflow.core.auth_gate import AuthGateMiddleware
from payflow.core.authentication import build_authenticator
from payflow.core.config import Settings, get_settings
from payflow.core.errors import ERROR_RESPONSES, setup_exception_handlers
from payflow.core.logging_config import setup_logging
from payflow.core.logging_middleware import RequestLoggingMiddleware
from payflow.core.rate_limit import (
    FixedWindowRateLimiter,
    LoginAttemptLimiter,
    MemoryLimiterStore,
    rate_limit_dependency,
)
from payflow.core.security import ConfigurationError, CredentialStore
from payflow.routers import admin, auth, bills, categories, health, reports, users
from payflow.services.storage import build_storage
from payflow.services.storage.base import Storage

logger = logging.getLogger("payflow")

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open storage on startup, release everything on shutdown."""
    storage: Storage = app.state.storage
    await storage.initialize()
    logger.info(
        "%s v%s started (storage=%s, auth=%s)",
        app.state.settings.app_name,
        __version__,
        storage.backend_name,
        app.state.authenticator.mode,
    )
    try:
        yield
    finally:
        await app.state.authenticator.aclose()
        await storage.close()
        logger.info("Shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    *,
    storage: Optional[Storage] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (defaults to the environment)
        storage: Pre-built storage backend (tests pass a MemoryStorage)
        http_client: Client for the external identity service
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, json_format=settings.log_json, log_file=settings.log_file)

    # Local accounts cannot work without a signing key; refuse to start
    if settings.is_production and settings.auth_mode == "local" and not settings.jwt_secret:
        raise ConfigurationError("JWT_SECRET must be set when AUTH_MODE=local in production")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )

    storage = storage or build_storage(settings)
    credentials = CredentialStore(
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_days=settings.jwt_expires_days,
        rounds=settings.bcrypt_rounds,
        production=settings.is_production,
    )
    limiter_store = MemoryLimiterStore()

    app.state.settings = settings
    app.state.storage = storage
    app.state.credentials = credentials
    app.state.authenticator = build_authenticator(settings, storage, credentials, http_client)
    app.state.api_rate_limiter = FixedWindowRateLimiter(
        limiter_store,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        name="api",
    )
    app.state.auth_rate_limiter = FixedWindowRateLimiter(
        limiter_store,
        max_requests=settings.auth_rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        name="auth",
    )
    app.state.login_limiter = LoginAttemptLimiter(
        limiter_store,
        max_attempts=settings.login_max_attempts,
        lockout_seconds=settings.login_lockout_seconds,
    )

    setup_exception_handlers(app)

    # Last added runs first: CORS -> request logging -> auth gate -> routes
    app.add_middleware(
        AuthGateMiddleware,
        api_key=settings.internal_api_key,
        api_key_header=settings.internal_api_key_header,
        prefix=API_PREFIX,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Routers
    # =========================================================================

    api_routes = {
        "prefix": API_PREFIX,
        "dependencies": [Depends(rate_limit_dependency("api_rate_limiter"))],
        "responses": ERROR_RESPONSES,
    }

    app.include_router(health.router, prefix=API_PREFIX)
    if settings.auth_mode == "local":
        app.include_router(auth.router, **api_routes)
    app.include_router(users.router, **api_routes)
    app.include_router(categories.router, **api_routes)
    app.include_router(bills.router, **api_routes)
    app.include_router(reports.router, **api_routes)
    app.include_router(admin.router, **api_routes)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "payflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
