"""
Teamgate API Server

Entry point for the FastAPI application.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from teamgate import __version__
from teamgate.api.v1 import router as api_v1_router
from teamgate.core.config import Settings, get_settings
from teamgate.core.database import create_engine, create_session_factory, init_db
from teamgate.core.errors import TeamgateError
from teamgate.core.logging import configure_logging
from teamgate.core.middleware import (
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    teamgate_error_handler,
)
from teamgate.services.registry import Services, build_services
from teamgate.tasks.invitation_expiry import run_periodic_sweep

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Passing ``services`` skips schema bootstrap and the background sweep;
    the caller owns the database.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)
    engine = None
    if services is None:
        engine = create_engine(settings)
        services = build_services(settings, create_session_factory(engine))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(
            "teamgate.starting",
            mode=settings.deployment_mode,
            rbac=settings.rbac_mode.value,
            ownership=settings.resolved_ownership_mode.value,
        )
        sweeper = None
        if engine is not None:
            if settings.is_sqlite:
                await init_db(engine)
            await services.sync_catalog()
            if settings.invitation_sweep_interval_seconds > 0:
                sweeper = asyncio.create_task(
                    run_periodic_sweep(
                        services.invitations, settings.invitation_sweep_interval_seconds
                    )
                )
        try:
            yield
        finally:
            log.info("teamgate.shutting_down")
            if sweeper is not None:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass
            if engine is not None:
                await engine.dispose()

    app = FastAPI(
        title="Teamgate",
        description="Workspace authorization and membership lifecycle engine.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services
    app.state.settings = settings

    # Middleware (last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "X-Principal-Id", "X-Principal-Email", "X-Principal-Name"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(TeamgateError, teamgate_error_handler)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database answers a trivial query."""
        async with services.sessions() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ready"}

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
