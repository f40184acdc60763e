# =============================================================================
# app/routers/health.py - Health Check Endpoints
# =============================================================================
# Liveness and readiness probes for load balancers and monitoring.
# =============================================================================

from fastapi import APIRouter
from pydantic import BaseModel

from app.dependencies import ServicesDep
from lib import collections
from lib.utils import utc_now_iso

router = APIRouter()

API_VERSION = "1.0.0"


# =============================================================================
# Response Models
# =============================================================================

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    environment: str
    version: str


class ChecksResponse(BaseModel):
    database: str
    storage: str


class ReadinessResponse(BaseModel):
    status: str
    checks: ChecksResponse
    timestamp: str


class LivenessResponse(BaseModel):
    status: str
    timestamp: str


def _unhealthy(error: Exception) -> str:
    return f"unhealthy: {str(error)[:50]}"


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(services: ServicesDep):
    return HealthResponse(
        status="healthy",
        timestamp=utc_now_iso(),
        environment=services.settings.ENVIRONMENT,
        version=API_VERSION,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(services: ServicesDep):
    """
    Readiness check.

    Queries the users table and looks up the delivery bucket; the service is
    "degraded" when either fails.
    """
    checks = ChecksResponse(database="healthy", storage="healthy")

    try:
        services.store.ping(collections.USERS)
    except Exception as e:
        checks.database = _unhealthy(e)

    try:
        services.storage.check_bucket()
    except Exception as e:
        checks.storage = _unhealthy(e)

    ready = checks.database == "healthy" and checks.storage == "healthy"
    return ReadinessResponse(
        status="ready" if ready else "degraded",
        checks=checks,
        timestamp=utc_now_iso(),
    )


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_check():
    return LivenessResponse(status="alive", timestamp=utc_now_iso())
