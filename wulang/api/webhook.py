"""
Webhook endpoint for inbound messages from the WhatsApp bridge.
"""
import json
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError as PydanticValidationError

from wulang.api.dependencies import get_services
from wulang.api.metrics import record_decision
from wulang.container import Services
from wulang.core.logging import get_logger
from wulang.core.security import get_validated_body
from wulang.schemas.message import WebhookMessageRequest, WebhookResponse, ErrorResponse
from wulang.services.orchestrator import Attachment, InboundMessage

logger = get_logger(__name__)

router = APIRouter(tags=["Webhook"])


def to_inbound_message(request: WebhookMessageRequest) -> InboundMessage:
    attachment = None
    if request.attachment is not None:
        attachment = Attachment(
            payload=request.attachment.decode(),
            filename=request.attachment.filename or "media_file",
            content_type=request.attachment.mime_type,
        )
    return InboundMessage(
        message_id=request.message_id,
        sender_id=request.sender_id,
        text=request.text,
        sender_name=request.sender_name,
        from_me=request.from_me,
        is_group=request.is_group_context,
        attachment=attachment,
    )


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid signature"},
        422: {"model": ErrorResponse, "description": "Validation error"},
    },
    summary="Handle inbound WhatsApp message",
    description="Route an inbound message through the conversation pipeline. Requires valid HMAC-SHA256 signature."
)
async def handle_message(
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    services: Annotated[Services, Depends(get_services)],
) -> WebhookResponse:
    """
    Handle an inbound WhatsApp message.

    - Validates HMAC-SHA256 signature (via dependency)
    - Validates message payload
    - Runs the conversation pipeline; duplicates are acknowledged silently
    - Sends the reply back through the bridge when one is configured
    """
    try:
        data = json.loads(validated_body)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in webhook request: {e}")
        raise HTTPException(status_code=422, detail="Invalid JSON")

    try:
        message_data = WebhookMessageRequest.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"Validation error in webhook request: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    message = to_inbound_message(message_data)
    decision = await services.orchestrator.handle(message)
    record_decision(decision.branch.value, decision.failed)

    delivered = False
    if decision.should_respond:
        delivered = await services.reply_sender.send_reply(message.sender_id, decision.reply)

    logger.info(
        "Message handled",
        extra={
            "extra_data": {
                "message_id": message.message_id,
                "sender_id": message.sender_id,
                "branch": decision.branch.value,
                "responded": decision.should_respond,
                "delivered": delivered,
            }
        }
    )

    return WebhookResponse(
        responded=decision.should_respond,
        branch=decision.branch.value,
        reply=decision.reply,
        delivered=delivered,
    )
