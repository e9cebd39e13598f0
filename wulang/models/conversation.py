"""
Conversation database models: senders, threads, their messages and stored media.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index
from sqlalchemy.orm import relationship

from wulang.core.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Conversation(Base):
    """One dialogue thread owned by a sender; the most recently updated one is active."""

    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_new_id)
    sender_id = Column(String(32), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    messages = relationship(
        "ConversationMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_conversations_sender_updated", "sender_id", "updated_at"),
    )

    def __repr__(self) -> str:
        return f"<Conversation(id={self.id}, sender_id={self.sender_id})>"


class Sender(Base):
    """A sender and the display name the transport reported for them."""

    __tablename__ = "senders"

    id = Column(String(32), primary_key=True)  # canonical sender id (phone number)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Sender(id={self.id}, name={self.name})>"


class Media(Base):
    """A stored attachment and its AI-generated summary."""

    __tablename__ = "media"

    id = Column(String(36), primary_key=True, default=_new_id)
    url = Column(Text, nullable=False)
    kind = Column(String(16), nullable=False)  # image, pdf or document
    summary = Column(Text, nullable=True)
    sender_id = Column(String(32), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<Media(id={self.id}, kind={self.kind})>"


class ConversationMessage(Base):
    """One turn in a thread. Never updated after insert."""

    __tablename__ = "conversation_messages"

    id = Column(String(36), primary_key=True, default=_new_id)
    role = Column(String(16), nullable=False)  # user, bot or system
    content = Column(Text, nullable=True)
    media_id = Column(String(36), ForeignKey("media.id", ondelete="SET NULL"), nullable=True)
    conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
    media = relationship("Media", lazy="joined")

    __table_args__ = (
        Index("ix_conversation_messages_thread_created", "conversation_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ConversationMessage(id={self.id}, role={self.role})>"
