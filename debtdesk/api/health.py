"""Health check API endpoints."""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request

from .. import __version__
from ..core.config import settings

logger = structlog.get_logger()
router = APIRouter()


@router.get(
    "/",
    summary="Health check",
    description="Basic health check endpoint",
)
async def health_check() -> Dict[str, str]:
    """Basic health check.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.app_name,
        "version": __version__,
    }


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the data gateway answers",
)
async def readiness_check(request: Request) -> Dict[str, Any]:
    """Readiness check for the gateway.

    Returns:
        Readiness status with the gateway check
    """
    ready_status: Dict[str, Any] = {
        "ready": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {},
    }

    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        ready_status["checks"]["gateway"] = {"status": "not_initialized"}
    elif await gateway.ping():
        ready_status["checks"]["gateway"] = {
            "status": "ready",
            "backend": settings.gateway_backend,
        }
    else:
        ready_status["checks"]["gateway"] = {
            "status": "unavailable",
            "backend": settings.gateway_backend,
        }

    if ready_status["checks"]["gateway"]["status"] != "ready":
        logger.warning("Gateway not ready", check=ready_status["checks"]["gateway"])
        ready_status["ready"] = False
        ready_status["message"] = "System not ready - gateway unavailable"
    else:
        ready_status["message"] = "System fully operational"

    return ready_status
