"""
Pydantic schemas for webhook requests and API responses.
"""
import base64
import binascii
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

CONTACT_SUFFIX = "@c.us"
GROUP_SUFFIX = "@g.us"


def canonical_sender_id(address: str) -> str:
    """Strip the transport suffix from a contact address, leaving the phone number."""
    return address.strip().replace(CONTACT_SUFFIX, "")


class AttachmentPayload(BaseModel):
    """Inline media attached to an inbound message."""

    data: str = Field(..., min_length=1, description="Base64-encoded file content")
    filename: Optional[str] = Field(default=None, max_length=255)
    mime_type: str = Field(..., min_length=1, max_length=255)

    @field_validator("data")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Attachment data must be valid base64")
        return v

    def decode(self) -> bytes:
        return base64.b64decode(self.data)


class WebhookMessageRequest(BaseModel):
    """Request schema for POST /webhook, as forwarded by the WhatsApp bridge."""

    message_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Transport message identifier"
    )
    from_: str = Field(
        ...,
        alias="from",
        min_length=1,
        description="Sender address, e.g. 6281234567890@c.us"
    )
    text: Optional[str] = Field(
        default=None,
        max_length=65536,
        description="Message body or media caption"
    )
    from_me: bool = Field(default=False, description="Message was sent by the bot's own account")
    is_group: bool = Field(default=False, description="Message was posted in a group chat")
    sender_name: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Contact name or WhatsApp push name of the sender"
    )
    attachment: Optional[AttachmentPayload] = None

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "message_id": "3EB0C767D26A1D5A",
                "from": "6281234567890@c.us",
                "text": "wulang, what is 1+1?",
                "sender_name": "Budi",
            }
        }
    }

    @property
    def is_group_context(self) -> bool:
        return self.is_group or self.from_.endswith(GROUP_SUFFIX)

    @property
    def sender_id(self) -> str:
        return canonical_sender_id(self.from_)


class WebhookResponse(BaseModel):
    """Response schema for POST /webhook."""
    status: str = Field(default="ok")
    responded: bool = False
    branch: str
    reply: Optional[str] = None
    delivered: bool = False


class MediaResponse(BaseModel):
    id: str
    url: str
    kind: str
    summary: Optional[str] = None

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    """Schema for a single conversation message."""
    id: str
    role: str
    content: Optional[str] = None
    media: Optional[MediaResponse] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ThreadResponse(BaseModel):
    id: str
    sender_id: str
    created_at: datetime
    updated_at: datetime
    message_count: int


class ThreadListResponse(BaseModel):
    """Response schema for GET /conversations/{sender_id}."""
    sender_id: str
    active_thread_id: Optional[str] = None
    threads: List[ThreadResponse]


class MessagesListResponse(BaseModel):
    """Response schema for GET /conversations/{sender_id}/messages."""
    thread_id: Optional[str] = None
    data: List[MessageResponse]
    total: int
    limit: int
    offset: int


class StatsResponse(BaseModel):
    """Response schema for GET /stats."""
    total_threads: int
    total_messages: int
    senders_count: int
    messages_per_role: Dict[str, int]
    total_media: int
    pending_media: int
    last_activity_at: Optional[datetime] = None


class MaintenanceResponse(BaseModel):
    """Response schema for POST /maintenance/run."""
    deleted_threads: int
    expired_pending_media: int
    deleted_media_files: int
    errors: List[str]


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""
    status: str
    checks: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    detail: str
