"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from tanda_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from tanda_engine.api.v1 import deposits, reputation, tandas
from tanda_engine.config import settings
from tanda_engine.container import Engine, build_engine
from tanda_engine.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


def create_app(engine_factory: Optional[Callable[[], Engine]] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    The engine is built when the app starts (not at import), after which
    old retry records are swept and the retry scheduler is started.
    """
    engine_factory = engine_factory or build_engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = engine_factory()
        app.state.engine = engine
        engine.registry.cleanup()

        ticket = engine.scheduler.start() if engine.config.scheduler_enabled else None
        logger.info("Engine started", extra={"scheduler": ticket is not None})
        try:
            yield
        finally:
            if ticket is not None:
                await engine.scheduler.stop(ticket)
            await engine.orchestrator.wait_for_background()
            logger.info("Engine stopped")

    app = FastAPI(
        title="Tanda Engine",
        description="Tanda lifecycle, deposit retry and reputation service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        engine: Engine = app.state.engine
        return {
            "status": "ok",
            "service": settings.service_name,
            "scheduler_running": engine.scheduler.running,
        }

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(tandas.router, prefix="/v1", tags=["tandas"])
    app.include_router(deposits.router, prefix="/v1", tags=["deposits"])
    app.include_router(reputation.router, prefix="/v1", tags=["reputation"])

    return app


app = create_app()
