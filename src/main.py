"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.config import get_settings
from src.core.fixtures import FixtureLoadError
from src.core.rate_limiter import limiter
from src.core.supabase import LiveStoreNotConfiguredError
from src.features.analytics.router import router as analytics_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    settings = get_settings()
    logger.info(f"Starting Chatbot Analytics in {settings.app_env} mode")
    yield
    # Shutdown
    logger.info("Shutting down Chatbot Analytics")


async def live_store_not_configured_handler(request: Request, exc: LiveStoreNotConfiguredError):
    logger.error(f"{request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


async def fixture_load_error_handler(request: Request, exc: FixtureLoadError):
    logger.error(f"{request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Analytics dataset is unreadable"})


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()
    configure_logging()

    app = FastAPI(
        title="Chatbot Analytics",
        description="Analytics aggregation for multi-tenant chatbot dashboards",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Data source errors
    app.add_exception_handler(LiveStoreNotConfiguredError, live_store_not_configured_handler)
    app.add_exception_handler(FixtureLoadError, fixture_load_error_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(analytics_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": "0.1.0"}

    # API info endpoint
    @app.get("/")
    async def root():
        return {
            "name": "Chatbot Analytics",
            "version": "0.1.0",
            "docs": "/docs" if settings.app_debug else None,
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_debug,
    )
