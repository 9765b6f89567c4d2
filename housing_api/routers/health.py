"""
Health check endpoints — used by load balancers, container probes, and monitoring.

/health/live  — liveness: is the process running?
/health/ready — readiness: can the document store be reached?
/health       — basic status with a timestamp
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from housing_api.core.config import settings
from housing_api.core.database import DocumentStore, get_store
from housing_api.core.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    success: bool = True
    message: str
    timestamp: datetime
    version: str
    environment: str


@router.get("/live", status_code=200, summary="Liveness probe")
async def liveness():
    return {"success": True, "status": "alive"}


@router.get("/ready", summary="Readiness probe")
async def readiness(store: DocumentStore = Depends(get_store)):
    try:
        await store.ping()
    except Exception as exc:
        logger.warning("health.store_unreachable", error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"success": False, "status": "degraded", "store": "unreachable"},
        )
    return {"success": True, "status": "ready", "store": "connected"}


@router.get("", response_model=HealthResponse, summary="API status")
async def health():
    return HealthResponse(
        message="Housing API is running",
        timestamp=datetime.now(timezone.utc),
        version=settings.API_VERSION,
        environment=settings.ENVIRONMENT,
    )
