"""
Health Check Endpoints
System health and monitoring endpoints
"""

from fastapi import APIRouter, Depends, Request
import structlog
import time
import psutil
from typing import Dict, Any

from app.core.cache import InMemoryTTLStore
from app.core.database import check_database_health
from app.core.deps import get_rate_tracker
from app.core.rate_tracker import RequestRateTracker
from app.schemas.base import HealthCheck, HealthStatus

logger = structlog.get_logger()
router = APIRouter()


@router.get("/", response_model=HealthCheck)
async def health_check(
    request: Request,
    rate_tracker: RequestRateTracker = Depends(get_rate_tracker),
) -> HealthCheck:
    """
    Comprehensive health check endpoint

    Returns:
        Health status with detailed checks
    """
    checks = {}
    overall_status = HealthStatus.HEALTHY

    try:
        started = time.perf_counter()
        db_healthy = await check_database_health()
        checks["database"] = {
            "status": "healthy" if db_healthy else "unhealthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2)
        }

        if not db_healthy:
            overall_status = HealthStatus.UNHEALTHY

        store = request.app.state.response_cache.store
        checks["cache"] = {
            "status": "healthy",
            "backend": "memory" if isinstance(store, InMemoryTTLStore) else "redis",
        }

        checks["rate_tracker"] = {
            "status": "healthy",
            "tracked_addresses": len(rate_tracker),
        }

        # Memory usage check
        memory = psutil.virtual_memory()
        memory_usage_percent = memory.percent
        checks["memory"] = {
            "status": "healthy" if memory_usage_percent < 90 else "degraded" if memory_usage_percent < 95 else "unhealthy",
            "usage_percent": memory_usage_percent,
            "available_gb": round(memory.available / (1024**3), 2)
        }

        if memory_usage_percent > 95:
            overall_status = HealthStatus.UNHEALTHY
        elif memory_usage_percent > 90 and overall_status == HealthStatus.HEALTHY:
            overall_status = HealthStatus.DEGRADED

        cpu_percent = psutil.cpu_percent(interval=None)
        checks["cpu"] = {
            "status": "healthy" if cpu_percent < 80 else "degraded" if cpu_percent < 95 else "unhealthy",
            "usage_percent": cpu_percent
        }

        if cpu_percent > 95:
            overall_status = HealthStatus.UNHEALTHY
        elif cpu_percent > 80 and overall_status == HealthStatus.HEALTHY:
            overall_status = HealthStatus.DEGRADED

    except Exception as e:
        logger.error("Health check error", error=str(e))
        overall_status = HealthStatus.UNHEALTHY
        checks["error"] = {"message": "health check failed"}

    return HealthCheck(
        status=overall_status,
        service="bizdesk-api",
        version="1.0.0",
        checks=checks
    )


@router.get("/ready")
async def readiness_check() -> Dict[str, Any]:
    """
    Readiness probe endpoint
    """
    if await check_database_health():
        return {"status": "ready", "timestamp": time.time()}
    return {"status": "not ready", "reason": "database unavailable", "timestamp": time.time()}


@router.get("/live")
async def liveness_check() -> Dict[str, Any]:
    """
    Liveness probe endpoint
    """
    return {"status": "alive", "timestamp": time.time()}
