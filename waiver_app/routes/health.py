"""
Health check and monitoring endpoints.
"""
import time
import logging
from fastapi import APIRouter
from reportlab import Version as reportlab_version
from waiver_app.db import check_database_health
from waiver_app.core.settings import settings
from waiver_app.services.placeholders import UnresolvedPolicy

logger = logging.getLogger("waiver_app.health")
router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "version": "1.0.0"
    }


@router.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with service status."""
    start_time = time.time()

    health_status = {
        "status": "healthy",
        "timestamp": time.time(),
        "environment": settings.environment,
        "services": {}
    }

    db_health = await check_database_health()
    health_status["services"]["database"] = db_health
    if db_health.get("status") != "healthy":
        logger.error(f"Database health check failed: {db_health}")
        health_status["status"] = "degraded"

    health_status["services"]["pdf"] = {
        "status": "configured",
        "engine": f"reportlab {reportlab_version}",
    }
    health_status["waiver_policy"] = {
        "unresolved_placeholders": UnresolvedPolicy.from_setting(settings.unresolved_placeholder_policy).value,
        "guardian_required_when_dob_unknown": settings.guardian_required_when_dob_unknown,
    }

    health_status["response_time_ms"] = round((time.time() - start_time) * 1000, 2)
    return health_status


@router.get("/ready")
async def readiness_check():
    """Kubernetes-style readiness probe."""
    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"status": "alive", "timestamp": time.time()}
