"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Everything process-wide (settings, token service, engine,
OAuth client) is built here once and kept on app.state; handlers reach
it through dependencies, never through module globals.

Run with:  uvicorn --factory sparklink.main:create_app
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sparklink import __version__
from sparklink.api import api_router
from sparklink.auth.jwt import TokenService
from sparklink.auth.oauth import GoogleOAuthClient
from sparklink.config import Settings, get_settings
from sparklink.db.engine import build_engine, build_session_factory
from sparklink.errors import SparkLinkError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown.
    """
    settings: Settings = app.state.settings
    logger.info(
        "sparklink.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        allow_unverified_login=settings.allow_unverified_login,
    )

    yield

    logger.info("sparklink.shutdown")
    await app.state.engine.dispose()


async def handle_app_error(request: Request, exc: SparkLinkError) -> JSONResponse:
    """Render workflow errors with their stable status code."""
    if exc.status_code >= 500:
        logger.warning(
            "request.failed",
            path=request.url.path,
            error_code=exc.error_code,
            error=exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application.

    Raises ConfigError when the token signing secret is missing, so a
    misconfigured process never starts serving.
    """
    settings = settings or get_settings()
    tokens = TokenService(settings)
    engine = build_engine(settings)

    app = FastAPI(
        title="SparkLink API",
        description="Link-in-bio profiles, accounts and verification badges",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.tokens = tokens
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.oauth_client = GoogleOAuthClient(settings)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from sparklink.middleware.request_id import RequestIdMiddleware
    from sparklink.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(SparkLinkError, handle_app_error)

    app.include_router(api_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "SparkLink API is running",
            "version": __version__,
            "health": "/api/health",
        }

    return app
