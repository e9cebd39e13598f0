"""
Records passed between the conversation services and their collaborators.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class MessageRole(str, Enum):
    USER = "user"
    BOT = "bot"
    SYSTEM = "system"


class MediaKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    DOCUMENT = "document"

    @classmethod
    def from_content_type(cls, content_type: str) -> "MediaKind":
        lowered = (content_type or "").lower()
        if lowered.startswith("image/"):
            return cls.IMAGE
        if lowered == "application/pdf":
            return cls.PDF
        return cls.DOCUMENT


class MediaRecord(BaseModel):
    id: str
    url: str
    kind: MediaKind
    summary: Optional[str] = None
    sender_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class MessageRecord(BaseModel):
    """A stored turn, detached from its database session."""
    id: str
    role: MessageRole
    content: Optional[str] = None
    media: Optional[MediaRecord] = None
    conversation_id: str
    created_at: datetime

    model_config = {"from_attributes": True}


class NewTurn(BaseModel):
    """The inbound user turn handed to the responder alongside the history window.

    ``payload`` carries the raw attachment bytes for this turn only; stored
    history refers to media by record.
    """
    text: str
    media: Optional[MediaRecord] = None
    payload: Optional[bytes] = None
    content_type: Optional[str] = None
    filename: Optional[str] = None
    sender_name: Optional[str] = None
