"""Entry point for the FastAPI application."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .container import build_services
from .database import create_tables, engine
from .logging_config import configure_logging
from .routers import analytics as analytics_router
from .routers import auth as auth_router
from .routers import credentials as credentials_router
from .routers import jobs as jobs_router
from .routers import partnerships as partnerships_router


def create_application() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    app = FastAPI(title="CreatorLogic Influencer Intelligence")

    # Development default; restrict origins in production.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router.router)
    app.include_router(jobs_router.router)
    app.include_router(partnerships_router.router)
    app.include_router(analytics_router.router)
    app.include_router(credentials_router.router)

    @app.on_event("startup")
    async def on_startup() -> None:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        # Create database tables.  In production use migrations instead.
        await create_tables()
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(settings)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        services = getattr(app.state, "services", None)
        if services is not None:
            await services.shutdown()
        await engine.dispose()

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Return a simple health status.

        It does not perform any database operations and returns immediately
        with a static response.
        """
        return {"status": "ok"}

    return app


app = create_application()
