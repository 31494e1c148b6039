"""
PixelQueue API - Asynchronous Image Processing Service
FastAPI Backend Entry Point
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pixelqueue import __version__
from pixelqueue.api import jobs, sync
from pixelqueue.core.config import Settings, get_settings
from pixelqueue.core.container import Container
from pixelqueue.core.exceptions import PixelQueueError
from pixelqueue.core.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    """
    Build the FastAPI application.

    A pre-built container may be passed in (tests); otherwise one is built
    from settings at startup and closed at shutdown.
    """
    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        configure_logging(settings.LOG_LEVEL)
        owned = getattr(app.state, "container", None) is None
        if owned:
            logger.info(f"Starting {settings.APP_NAME}...")
            app.state.container = Container.build(settings)
        yield
        if owned:
            logger.info(f"Shutting down {settings.APP_NAME}...")
            app.state.container.close()
            app.state.container = None

    app = FastAPI(
        title=settings.APP_NAME,
        description="Asynchronous image transformation jobs backed by a Redis queue",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.container = container

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(jobs.router, prefix=f"{settings.API_PREFIX}/jobs", tags=["Jobs"])
    app.include_router(sync.router, prefix=f"{settings.API_PREFIX}/sync", tags=["Synchronous"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health check endpoint for load balancers and monitoring.
        Returns detailed status of critical services.
        """
        c: Container = app.state.container
        status = {
            "status": "healthy",
            "version": __version__,
            "services": {},
        }

        db_status = c.database.health_check()
        if db_status["status"] == "ok":
            status["services"]["database"] = "ok"
        else:
            status["services"]["database"] = f"error: {db_status.get('error')}"
            status["status"] = "degraded"

        redis_status = c.redis.health_check()
        if redis_status.get("connected"):
            status["services"]["redis"] = "ok"
            status["services"]["redis_version"] = redis_status.get("redis_version")
        else:
            status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
            status["status"] = "degraded"

        storage_status = c.storage.health_check()
        status["services"]["storage"] = storage_status["status"]
        if storage_status["status"] != "ok":
            status["status"] = "degraded"

        # Queue depth, job counts and stuck jobs are informational only
        try:
            status["queue"] = {"name": c.queue.name, "depth": c.queue.depth()}
        except PixelQueueError as e:
            status["queue"] = {"name": c.queue.name, "error": e.message}
        try:
            status["stale_jobs"] = len(c.job_store.list_stale(c.settings.STALE_JOB_SECONDS))
            status["jobs"] = c.job_store.count_by_status()
        except PixelQueueError as e:
            status["stale_jobs"] = f"error: {e.message}"

        return status

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint."""
        return {
            "message": f"{settings.APP_NAME} - asynchronous image processing",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
