"""FastAPI application entry point for idlink.

Contact identity resolution REST API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from idlink import __version__
from idlink.api import register_exception_handlers
from idlink.api.middleware import RequestLoggingMiddleware
from idlink.config import get_settings
from idlink.db import check_connection, close_all_connections, create_schema
from idlink.logging import get_logger, setup_logging

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting idlink API",
        extra={
            "environment": settings.environment,
            "debug": settings.api_debug,
        },
    )

    if settings.auto_create_schema:
        await create_schema()
        logger.info("Database schema synchronized")

    yield

    logger.info("Shutting down idlink API")
    await close_all_connections()


settings = get_settings()

app = FastAPI(
    title="idlink API",
    description="Contact identity resolution REST API",
    version=__version__,
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    openapi_url="/openapi.json" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


# =========================
# Health Check Endpoints
# =========================


@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "idlink-api"}


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    """Readiness check that verifies database connectivity."""
    checks = {"database": "unknown"}

    try:
        await check_connection()
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {e.__class__.__name__}"
        logger.warning(f"Readiness check failed: {e}")

    all_healthy = all(v == "healthy" for v in checks.values())
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={
            "status": "ready" if all_healthy else "not_ready",
            "checks": checks,
        },
    )


@app.get("/health/live", tags=["Health"])
async def liveness_check():
    """Liveness check - just confirms the service is running."""
    return {"status": "alive"}


# =========================
# API Routers
# =========================

from idlink.api.contacts import router as contacts_router  # noqa: E402
from idlink.api.identify import router as identify_router  # noqa: E402

app.include_router(identify_router, tags=["Identity"])
app.include_router(contacts_router, prefix="/api/v1", tags=["Contacts"])


# =========================
# Root Endpoint
# =========================


@app.get("/", tags=["Root"])
async def root():
    """API root endpoint."""
    return {
        "name": "idlink API",
        "version": __version__,
        "description": "Contact identity resolution",
        "docs": "/docs" if settings.is_development else None,
    }
