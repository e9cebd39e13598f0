"""
Read-only endpoints for inspecting stored conversations.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from wulang.api.dependencies import get_services
from wulang.container import Services
from wulang.core.logging import get_logger
from wulang.schemas.message import (
    MessageResponse,
    MessagesListResponse,
    ThreadListResponse,
    ThreadResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/conversations", tags=["Conversations"])


@router.get(
    "/{sender_id}",
    response_model=ThreadListResponse,
    summary="List threads of a sender",
    description="All stored threads of a sender, most recently active first."
)
async def list_threads(
    sender_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> ThreadListResponse:
    threads = [ThreadResponse(**row) for row in services.repository.list_threads_for_sender(sender_id)]
    return ThreadListResponse(
        sender_id=sender_id,
        active_thread_id=threads[0].id if threads else None,
        threads=threads,
    )


@router.get(
    "/{sender_id}/messages",
    response_model=MessagesListResponse,
    summary="List messages of the active thread",
    description="Messages of the sender's active thread in creation order, with pagination."
)
async def list_messages(
    sender_id: str,
    services: Annotated[Services, Depends(get_services)],
    limit: Annotated[int, Query(ge=1, le=100, description="Number of messages to return")] = 50,
    offset: Annotated[int, Query(ge=0, description="Number of messages to skip")] = 0,
) -> MessagesListResponse:
    """
    List messages of the sender's active thread.

    - **limit**: Number of messages per page (1-100, default 50)
    - **offset**: Number of messages to skip (default 0)
    """
    repository = services.repository
    thread_id = repository.find_active_thread(sender_id)
    if thread_id is None:
        return MessagesListResponse(thread_id=None, data=[], total=0, limit=limit, offset=offset)

    messages = repository.list_messages(thread_id, limit=limit, offset=offset)
    total = repository.count_messages(thread_id)

    logger.debug(
        "Listed messages",
        extra={
            "extra_data": {
                "thread_id": thread_id,
                "returned": len(messages),
                "total": total,
            }
        }
    )

    return MessagesListResponse(
        thread_id=thread_id,
        data=[MessageResponse.model_validate(message.model_dump(mode="json")) for message in messages],
        total=total,
        limit=limit,
        offset=offset,
    )
