"""Affilify auth FastAPI application — entry point for the API server."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import Settings, get_settings
from src.api.db.users import SqlUserStore
from src.api.errors import register_exception_handlers
from src.api.middleware import RouteGateMiddleware
from src.api.routing import RouteTable
from src.auth.rate_limit import RateLimiter
from src.auth.service import AuthService
from src.core.interfaces import UserStore
from src.core.logging import get_logger, setup_logging
from src.data.db import close_engine, create_engine

log = get_logger(__name__)


def _lifespan(settings: Settings):  # noqa: ANN202
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Startup/shutdown lifecycle — own the DB engine when no store was injected."""
        setup_logging(settings.log_level, json_output=settings.is_prod)
        log.info("api_starting", environment=settings.affilify_env)
        engine = None
        if getattr(app.state, "auth", None) is None:
            engine = create_engine(settings)
            app.state.engine = engine
            app.state.auth = AuthService.build(SqlUserStore(engine), settings)
        try:
            yield
        finally:
            if engine is not None:
                await close_engine(engine)
            log.info("api_shutdown")

    return lifespan


def create_app(settings: Settings | None = None, store: UserStore | None = None) -> FastAPI:
    """Build and return the FastAPI application.

    Passing ``store`` wires the auth service immediately and skips database
    engine creation; tests and local demos use this with the in-memory store.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Affilify Auth API",
        description="Authentication, sessions and plan entitlements",
        version="0.1.0",
        lifespan=_lifespan(settings),
    )
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.rate_limiter = RateLimiter()
    if store is not None:
        app.state.auth = AuthService.build(store, settings)

    register_exception_handlers(app)

    # Route gate sits inside CORS so preflight requests are answered first.
    app.add_middleware(
        RouteGateMiddleware,
        routes=RouteTable.default(),
        secure_cookies=settings.is_prod,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url, "http://localhost:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    from src.api.routes.auth import router as auth_router
    from src.api.routes.health import router as health_router
    from src.api.routes.user import router as user_router

    app.include_router(health_router, prefix="/api")
    app.include_router(auth_router, prefix="/api")
    app.include_router(user_router, prefix="/api")

    return app


app = create_app()
