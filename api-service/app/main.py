"""
FastAPI Main Application
BizDesk API Service
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import time
import structlog
from contextlib import asynccontextmanager

from app.core.simple_config import settings
from app.core.cache import ResponseCache, build_ttl_store
from app.core.database import AsyncSessionLocal, check_database_health, close_database, init_database
from app.core.logging import setup_logging
from app.core.rate_tracker import RequestRateTracker
from app.api.v1.router import api_router
from app.middleware.logging import LoggingMiddleware
from app.middleware.security import RateLimitMiddleware, RequestValidationMiddleware, SecurityHeadersMiddleware
from app.services.bootstrap import ensure_bootstrap_technician_exists
from app.services.permission_catalog import permission_catalog_service

# Setup structured logging
setup_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Starting BizDesk API Service", version="1.0.0", environment=settings.ENVIRONMENT)

    await init_database()

    # Idempotent seeding
    async with AsyncSessionLocal() as session:
        await permission_catalog_service.seed(session)
        await ensure_bootstrap_technician_exists(session)

    app.state.response_cache = ResponseCache(build_ttl_store())
    app.state.rate_tracker = RequestRateTracker(
        limit=settings.RATE_LIMIT_PER_MINUTE,
        window_seconds=settings.RATE_TRACKER_WINDOW_SECONDS,
        anomaly_threshold=settings.RATE_ANOMALY_THRESHOLD,
    )
    logger.info("Application state initialized", cache_backend=settings.CACHE_BACKEND)

    try:
        yield
    finally:
        logger.info("Shutting down BizDesk API Service")
        await app.state.response_cache.close()
        app.state.rate_tracker.reset()
        await close_database()


# Create FastAPI application
app = FastAPI(
    title="BizDesk API",
    description="Multi-company business management API: accounts, roles and permissions",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    lifespan=lifespan
)

# ==========================================
# CORS Middleware - MUST be added FIRST
# ==========================================
cors_origins = list(settings.CORS_ORIGINS or [])
if settings.ENVIRONMENT == "development":
    for origin in ("http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:5173"):
        if origin not in cors_origins:
            cors_origins.append(origin)

logger.info("Configuring CORS", environment=settings.ENVIRONMENT, origins=cors_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,  # Required for JWT authentication
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=[
        "Authorization",
        "Content-Type",
        "Accept",
        "X-Requested-With",
        "X-Request-ID",
        "Origin",
    ],
    expose_headers=["X-Request-ID", "Retry-After"],
    max_age=600,  # Cache preflight requests for 10 minutes
)

# ==========================================
# Security Middlewares (after CORS)
# ==========================================
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestValidationMiddleware)
app.add_middleware(RateLimitMiddleware)

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Add trusted host middleware for production
if settings.ENVIRONMENT == "production":
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )

# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint for Docker and load balancers"""
    if await check_database_health():
        return {
            "status": "healthy",
            "service": "bizdesk-api",
            "version": "1.0.0",
            "timestamp": time.time(),
            "database": "connected"
        }
    return JSONResponse(
        status_code=503,
        content={
            "status": "unhealthy",
            "service": "bizdesk-api",
            "version": "1.0.0",
            "timestamp": time.time(),
            "database": "unavailable"
        }
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "BizDesk API Service",
        "version": "1.0.0",
        "docs": "/docs" if settings.ENVIRONMENT == "development" else "disabled",
        "health": "/health"
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True
    )

    detail = {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
    # Internal detail is only exposed in a diagnostic posture
    if settings.ENVIRONMENT == "development" and settings.DEBUG:
        detail["error"] = str(exc)

    return JSONResponse(status_code=500, content={"detail": detail})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower()
    )
