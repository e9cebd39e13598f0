"""
Health check endpoints for liveness and readiness probes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from wulang.api.dependencies import get_services
from wulang.container import Services
from wulang.core.database import check_db_connection
from wulang.core.logging import get_logger
from wulang.schemas.message import HealthResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always returns 200 to indicate the service is alive."
)
async def liveness() -> HealthResponse:
    """Liveness probe - always returns 200."""
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    description="Returns 200 if the service is ready to handle traffic."
)
async def readiness(
    response: Response,
    services: Annotated[Services, Depends(get_services)],
) -> HealthResponse:
    """
    Readiness probe - checks if the service can handle traffic.

    Checks:
    - Database is reachable
    - WEBHOOK_SECRET environment variable is configured

    The AI responder and reply webhook are reported but do not gate readiness.
    """
    settings = services.settings
    checks = {}
    is_ready = True

    db_ok = check_db_connection(services.engine)
    checks["database"] = "ok" if db_ok else "failed"
    if not db_ok:
        is_ready = False
        logger.warning("Readiness check failed: database not reachable")

    secret_ok = settings.is_webhook_secret_configured
    checks["webhook_secret"] = "ok" if secret_ok else "not configured"
    if not secret_ok:
        is_ready = False
        logger.warning("Readiness check failed: WEBHOOK_SECRET not configured")

    checks["ai_responder"] = "ok" if settings.is_ai_configured else "not configured"
    checks["reply_webhook"] = "ok" if services.reply_sender.is_configured else "not configured"
    checks["maintenance_scheduler"] = "running" if services.scheduler.is_running else "stopped"

    if is_ready:
        return HealthResponse(status="ok", checks=checks)
    response.status_code = 503
    return HealthResponse(status="not ready", checks=checks)
