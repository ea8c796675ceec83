"""
Meshwar Admin API - Main Application Entry Point

Administrative backend for the Meshwar location/activity booking platform:
- Capacity-safe booking admission in a retrying transaction
- CRUD for users, categories, locations and activities
- Dashboard analytics cached in Redis
- Text/HTML reports and snapshot import
- Structured logging with request correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from meshwar.core.config import get_settings
from meshwar.core.exceptions import register_exception_handlers
from meshwar.core.logging import setup_logging, get_logger
from meshwar.core.metrics import metrics_endpoint
from meshwar.db.session import Database
from meshwar.api.router import api_router
from meshwar.api.middleware import RequestLoggingMiddleware
from meshwar.services.cache_service import DashboardCache
from meshwar.services.user_service import ensure_bootstrap_admin

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the database and dashboard cache on app.state, then tear them down."""
    setup_logging(settings)
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    database = Database.from_settings(settings)
    app.state.database = database

    if settings.BOOTSTRAP_ADMIN_EMAIL and settings.BOOTSTRAP_ADMIN_PASSWORD:
        async with database.session() as session:
            await ensure_bootstrap_admin(
                session, settings.BOOTSTRAP_ADMIN_EMAIL, settings.BOOTSTRAP_ADMIN_PASSWORD
            )

    # Dashboard cache; a no-op when Redis is off or unreachable
    cache = await DashboardCache.connect(settings)
    app.state.cache = cache
    if cache.enabled:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without dashboard cache")

    yield

    await cache.close()
    await database.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Admin API for the Meshwar booking platform with capacity-safe admission",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Liveness probe with dashboard cache stats."""
    cache = getattr(request.app.state, "cache", None)
    cache_stats = await cache.stats() if cache else {"status": "disabled"}
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
