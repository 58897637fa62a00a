"""
System Routes: Health Check and Monitoring Endpoints

Health reporting for the configured backends and the Prometheus scrape
endpoint. Backends that are not configured (no REDIS_URL / DATABASE_URL)
report "in-memory" rather than failing the check.
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from api.dependencies import get_database, get_metrics, get_redis
from api.schemas import HealthCheckResponse
from config.settings import get_settings
from core.exceptions import InfrastructureError
from infrastructure.database import DatabaseManager
from infrastructure.monitoring import MetricsCollector
from infrastructure.redis_client import RedisClient

router = APIRouter(tags=["System"])


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="System health check with dependency status",
)
async def health_check(
    db: Optional[DatabaseManager] = Depends(get_database),
    redis: Optional[RedisClient] = Depends(get_redis),
) -> HealthCheckResponse:
    """
    System health check with dependency status.

    Overall status is "degraded" when any configured backend is unhealthy.
    """
    dependencies: Dict[str, str] = {}

    if db is None:
        dependencies["database"] = "in-memory"
    else:
        try:
            await db.health_check()
            dependencies["database"] = "healthy"
        except InfrastructureError as e:
            dependencies["database"] = f"unhealthy: {e.message}"

    if redis is None:
        dependencies["redis"] = "in-memory"
    else:
        dependencies["redis"] = "healthy" if await redis.ping() else "unhealthy"

    overall_status = (
        "degraded" if any(v.startswith("unhealthy") for v in dependencies.values()) else "healthy"
    )

    return HealthCheckResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        version=get_settings().app_version,
        dependencies=dependencies,
    )


@router.get(
    "/metrics",
    summary="System metrics (Prometheus format)",
    description="Export metrics in Prometheus format for monitoring systems",
)
async def get_system_metrics(
    metrics: MetricsCollector = Depends(get_metrics),
) -> Response:
    """Export generation, admission, provider and media metrics for Prometheus."""
    return Response(content=metrics.export_metrics(), media_type=metrics.get_content_type())
