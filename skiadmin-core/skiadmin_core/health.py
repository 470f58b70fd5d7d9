"""
Health Check Module
===================
Liveness, readiness and component status for the auth service.
"""

import time
from typing import Optional, Dict, Callable, Awaitable
from enum import Enum

from fastapi import APIRouter, Response
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine
import structlog

from skiadmin_core import metrics

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: HealthStatus
    service: str
    version: str
    components: Dict[str, ComponentHealth]
    timestamp: float


async def check_database(engine: AsyncEngine) -> ComponentHealth:
    """Check database connectivity and latency."""
    try:
        start = time.time()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="connected", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))


async def check_redis(redis_client) -> ComponentHealth:
    """Check Redis connectivity and latency."""
    try:
        start = time.time()
        await redis_client.ping()
        latency = (time.time() - start) * 1000
        return ComponentHealth(status="connected", latency_ms=round(latency, 2))
    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        return ComponentHealth(status="error", error=str(e))


def create_health_router(
    service_name: str,
    version: str = "1.0.0",
    engine: Optional[AsyncEngine] = None,
    redis_client=None,
    custom_checks: Optional[Dict[str, Callable[[], Awaitable[ComponentHealth]]]] = None,
) -> APIRouter:
    """
    Create a health check router with component status.

    Both the database and Redis hold replay and lockout state, so either
    one failing makes the service unhealthy rather than degraded.

    Args:
        service_name: Name of the service (e.g., "skiadmin-auth")
        version: Service version
        engine: SQLAlchemy async engine (optional)
        redis_client: Redis client (optional)
        custom_checks: Dict of custom health check functions (optional)

    Returns:
        FastAPI router with /health, /health/live, /health/ready and /metrics
    """
    router = APIRouter(tags=["Health"])

    async def _critical_components() -> Dict[str, ComponentHealth]:
        components: Dict[str, ComponentHealth] = {}
        if engine is not None:
            components["database"] = await check_database(engine)
        if redis_client is not None:
            components["redis"] = await check_redis(redis_client)
        return components

    @router.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check with all component statuses."""
        components = await _critical_components()
        overall_status = HealthStatus.HEALTHY
        if any(c.status == "error" for c in components.values()):
            overall_status = HealthStatus.UNHEALTHY

        if custom_checks:
            for name, check_fn in custom_checks.items():
                try:
                    components[name] = await check_fn()
                except Exception as e:
                    components[name] = ComponentHealth(status="error", error=str(e))
                if components[name].status == "error" and overall_status == HealthStatus.HEALTHY:
                    overall_status = HealthStatus.DEGRADED

        return HealthResponse(
            status=overall_status,
            service=service_name,
            version=version,
            components=components,
            timestamp=time.time(),
        )

    @router.get("/health/live")
    async def liveness_probe():
        """Kubernetes liveness probe - always returns 200 if service is running."""
        return {"status": "alive"}

    @router.get("/health/ready")
    async def readiness_probe():
        """Kubernetes readiness probe - the shared stores must be reachable."""
        for name, component in (await _critical_components()).items():
            if component.status == "error":
                return Response(
                    content=f'{{"status": "not_ready", "reason": "{name}_unavailable"}}',
                    status_code=503,
                    media_type="application/json",
                )
        return {"status": "ready"}

    @router.get("/metrics")
    async def metrics_endpoint():
        """Prometheus exposition of the auth counters."""
        return Response(content=metrics.get_metrics_text(), media_type=metrics.CONTENT_TYPE_LATEST)

    return router
