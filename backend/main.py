"""Postwise Analytics - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from config import get_settings
from database import async_session, engine
from middleware.rate_limit import limiter, rate_limit_exceeded_handler
from models import Base
from routers import analytics_router
from services.analytics_aggregator import AnalyticsAggregator
from services.analytics_cache import create_analytics_cache
from services.platform_registry import build_registry
from services.token_store import TokenStore

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - create tables and shared services on startup."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    cache = create_analytics_cache(
        settings.analytics_cache_backend,
        settings.redis_url,
        settings.analytics_cache_ttl_seconds,
    )
    if await cache.health_check():
        logger.info(f"Analytics cache ready ({settings.analytics_cache_backend})")
    else:
        logger.warning("Redis not available - analytics cache reads and writes will fail")

    if not settings.debug and settings.jwt_secret == "dev-secret-change-in-production":
        logger.warning("SECURITY WARNING: Using default JWT secret in production!")

    token_store = TokenStore(
        settings.token_encryption_key,
        async_session,
        allow_ephemeral_key=settings.debug,
    )
    app.state.analytics_cache = cache
    app.state.aggregator = AnalyticsAggregator(
        build_registry(settings),
        token_store,
        fetch_timeout=settings.analytics_fetch_timeout_seconds,
        default_window_days=settings.analytics_default_window_days,
    )

    yield

    await cache.close()
    await engine.dispose()


app = FastAPI(
    title="Postwise Analytics API",
    description="Cross-platform analytics for scheduled social posts",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analytics_router)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last-resort 500; the real message is only exposed in debug mode."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    message = str(exc) if settings.debug else "An error occurred"
    return JSONResponse(
        status_code=500,
        content={"error": "InternalServerError", "message": message},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "postwise-analytics"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Postwise Analytics API",
        "version": "0.1.0",
        "docs": "/docs",
    }
