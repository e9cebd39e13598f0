"""
On-demand maintenance endpoint.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from wulang.api.dependencies import get_services
from wulang.container import Services
from wulang.core.logging import get_logger
from wulang.core.security import get_validated_body
from wulang.schemas.message import MaintenanceResponse, ErrorResponse

logger = get_logger(__name__)

router = APIRouter(tags=["Maintenance"])


@router.post(
    "/maintenance/run",
    response_model=MaintenanceResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid signature"}},
    summary="Run maintenance now",
    description="Purge stale conversations, expired pending media and old media files. Requires a signed body."
)
async def run_maintenance(
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    services: Annotated[Services, Depends(get_services)],
) -> MaintenanceResponse:
    logger.info("Running manual maintenance...")
    report = services.maintenance.run_maintenance()
    return MaintenanceResponse(
        deleted_threads=report.deleted_threads,
        expired_pending_media=report.expired_pending_media,
        deleted_media_files=report.deleted_media_files,
        errors=report.errors,
    )
