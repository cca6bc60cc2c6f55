"""
FastAPI application initialization
"""

from typing import Callable, Optional
from fastapi import FastAPI
from api.routes import health, events, stats
from api.middleware import RequestContextMiddleware
from core.config import load_settings
from core.logging import setup_logging
from ingestion.exporter import EventExporter
import logging

logger = logging.getLogger(__name__)

ExporterFactory = Callable[[], EventExporter]


def exporter_from_environment() -> EventExporter:
    """Load settings and build the production exporter (raises ConfigurationError)"""
    settings = load_settings()
    setup_logging(settings.LOG_LEVEL)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    return EventExporter.from_settings(settings)


def create_app(exporter_factory: Optional[ExporterFactory] = None) -> FastAPI:
    """
    Build the app. The exporter is created and bootstrapped at startup;
    a configuration or bootstrap failure aborts startup.
    """
    app = FastAPI(
        title="Redshift Event Export API",
        description="Buffers ingested events and delivers them to Redshift in batches",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(RequestContextMiddleware)

    app.include_router(health.router)
    app.include_router(events.router)
    app.include_router(stats.router)

    factory = exporter_factory or exporter_from_environment

    @app.on_event("startup")
    async def startup_event():
        """Application startup event"""
        logger.info("Starting Redshift Event Export API")
        exporter = factory()
        await exporter.setup()
        app.state.exporter = exporter

    @app.on_event("shutdown")
    async def shutdown_event():
        """Application shutdown event"""
        logger.info("Shutting down Redshift Event Export API")
        exporter = getattr(app.state, "exporter", None)
        if exporter is not None:
            await exporter.teardown()
            app.state.exporter = None

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Redshift Event Export API",
            "version": "1.0.0",
            "docs": "/docs",
            "health": "/health",
            "endpoints": {
                "events": "/events",
                "flush": "/flush",
                "stats": "/stats"
            }
        }

    return app


app = create_app()
