"""
Stats endpoint for analytics.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from wulang.api.dependencies import get_services
from wulang.container import Services
from wulang.core.logging import get_logger
from wulang.schemas.message import StatsResponse

logger = get_logger(__name__)

router = APIRouter(tags=["Analytics"])


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Get conversation statistics",
    description="Returns lightweight analytics about stored conversations."
)
async def get_stats(
    services: Annotated[Services, Depends(get_services)],
) -> StatsResponse:
    """
    Get conversation statistics including:

    - Thread and message counts
    - Unique sender count
    - Messages per role
    - Attachments currently waiting for a question
    - Time of the most recent activity
    """
    stats = services.repository.stats()

    logger.debug(
        "Generated stats",
        extra={
            "extra_data": {
                "total_threads": stats["total_threads"],
                "total_messages": stats["total_messages"],
            }
        }
    )

    return StatsResponse(pending_media=len(services.pending_media), **stats)
