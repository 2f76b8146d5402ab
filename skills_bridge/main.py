"""
Global Skills Bridge API entry point

FastAPI application connecting TVET graduates with employers, mentors and the
RTB oversight body. This module wires configuration, middleware, the error
normalizer and the routers together.
"""

from contextlib import asynccontextmanager
import logging
import sys
import time
from datetime import datetime, timezone
from typing import Optional
from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import ORJSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from skills_bridge import __version__
from skills_bridge.config import Settings, get_settings
from skills_bridge.db.mongo import init_mongo, close_mongo, ensure_indexes, ping, database_name
from skills_bridge.middleware.error_handler import register_exception_handlers
from skills_bridge.middleware.rate_limit import RateLimitMiddleware
from skills_bridge.middleware.request_id import RequestIDMiddleware
from skills_bridge.models import DatabaseStatus, HealthResponse
from skills_bridge.routers.auth import router as auth_router
from skills_bridge.routers.public import router as public_router

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle manager

    Connects MongoDB and creates indexes before accepting requests.
    """
    settings: Settings = app.state.settings

    try:
        settings.validate_required()
        logger.info("✅ Configuration validated")
    except ValueError as e:
        logger.error(f"❌ Configuration validation failed: {e}")
        if settings.is_production:
            raise  # Fail fast in production
        else:
            logger.warning("⚠️ Continuing with invalid config (non-production mode)")

    logger.info("🚀 Starting Global Skills Bridge API...")

    logger.info("📦 Connecting to MongoDB...")
    try:
        await init_mongo(settings)
        await ensure_indexes()
        logger.info(f"✅ MongoDB connected: {database_name()}")
    except Exception as e:
        logger.error(f"❌ MongoDB connection failed: {e}")
        raise

    logger.info("✅ Application ready!")

    try:
        yield
    finally:
        logger.info("🛑 Shutting down...")
        await close_mongo()
        logger.info("✅ Shutdown complete")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        settings: Settings to use instead of the cached environment settings

    Returns:
        Configured FastAPI instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Global Skills Bridge API",
        description="Job matching and skills development platform for TVET graduates",
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.settings = settings

    register_exception_handlers(app)

    # Middleware: the last one added runs first
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window,
    )
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    cors_origins = settings.get_cors_origins_list()
    if "*" in cors_origins:
        logger.warning("⚠️ CORS allows all origins - not recommended for production!")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        """Health check"""
        connected = await ping()
        return HealthResponse(
            message="Global Skills Bridge API is running",
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime=round(time.monotonic() - STARTED_AT, 3),
            environment=request.app.state.settings.app_env,
            database=DatabaseStatus(
                status="Connected" if connected else "Disconnected",
                name=database_name(),
            ),
            version=__version__,
        )

    api = APIRouter(prefix="/api")
    api.include_router(auth_router, prefix="/auth", tags=["auth"])
    api.include_router(public_router, prefix="/public", tags=["public"])
    app.include_router(api)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "skills_bridge.main:app",
        host=get_settings().app_host,
        port=get_settings().port,
        reload=get_settings().is_development,
    )
