"""FastAPI application factory and main entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crowdwatch import __version__
from crowdwatch.api.v1 import api_router
from crowdwatch.core.config import get_settings
from crowdwatch.core.logging_config import configure_logging
from crowdwatch.services.sale_monitor.monitor import SaleMonitor

logger = logging.getLogger(__name__)


def create_app(monitor: SaleMonitor | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        monitor: Pre-built sale monitor. If None, one is built from settings
                 at startup; a BindingError then aborts startup.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the sale monitor on startup and stop it on shutdown."""
        # Startup
        configure_logging(settings)
        app.state.settings = settings
        app.state.monitor = monitor or SaleMonitor(settings)
        await app.state.monitor.start()
        logger.info(f"{settings.app_name} {__version__} started ({settings.environment})")

        yield

        # Shutdown
        await app.state.monitor.stop()

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Crowdsale purchase watcher",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routes
    register_routes(app)

    return app


def register_routes(app: FastAPI) -> None:
    """Register all application routes."""
    settings = get_settings()

    # Include API router
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


# Create application instance
app = create_app()
