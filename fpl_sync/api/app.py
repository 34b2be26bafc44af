"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from fpl_sync import __version__
from fpl_sync.api.errors import register_error_handlers
from fpl_sync.api.middleware import RequestLoggingMiddleware
from fpl_sync.api.routers import entities, health, jobs
from fpl_sync.config import get_settings
from fpl_sync.container import Container
from fpl_sync.monitoring import configure_logging


def create_app(container: Container | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        container: Pre-built container (defaults to one built from settings).
            A container that is not started yet is started on startup and
            closed on shutdown; an already running one is left to its owner.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        active = container
        if active is None:
            settings = get_settings()
            configure_logging(settings.environment)
            active = Container.build(settings)

        managed = not active.started
        if managed:
            await active.start()
        app.state.container = active
        try:
            yield
        finally:
            if managed:
                await active.close()

    app = FastAPI(
        title="FPL Sync",
        description="Fantasy Premier League data synchronization backend",
        version=__version__,
        lifespan=lifespan,
    )
    if container is not None:
        app.state.container = container

    app.add_middleware(RequestLoggingMiddleware)
    register_error_handlers(app)

    app.include_router(health.router, prefix="/api")
    app.include_router(jobs.router, prefix="/api")
    for router in entities.routers:
        app.include_router(router, prefix="/api")

    return app
