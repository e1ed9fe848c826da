"""HarborList Trust Service - FastAPI Application."""

from contextlib import asynccontextmanager

import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from harborlist.trust import __version__
from harborlist.trust.audit import configure_audit_logging
from harborlist.trust.config import Settings, get_settings
from harborlist.trust.logs import configure_logging
from harborlist.trust.routes import authorize_router, health_router, sync_router
from harborlist.trust.routes.deps import get_scheduler, init_deps

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()

    configure_logging()
    configure_audit_logging(
        log_level=settings.log_level,
        json_format=settings.environment not in ("local", "development"),
        service_name=settings.service_name,
    )

    logger.info("Starting HarborList Trust Service environment=%s", settings.environment)

    await init_deps(settings)

    scheduler = get_scheduler()
    if settings.scheduler_enabled:
        scheduler.start()

    logger.info("Service initialized")

    yield

    # Cleanup
    scheduler.shutdown()
    logger.info("Shutting down HarborList Trust Service")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="HarborList Trust Service",
        description="Dual-tenant token authorizer and origin trust synchronizer",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment in ("local", "development") else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(authorize_router)
    app.include_router(sync_router)

    app.mount("/metrics", make_asgi_app())

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


# Default app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "harborlist.trust.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment in ("local", "development"),
    )
