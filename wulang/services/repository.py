"""
SQLAlchemy-backed persistence for senders, threads, messages and media.

Every public method runs in its own transaction and returns detached
records; SQLAlchemy failures surface as DatabaseError.
"""
from datetime import datetime, timedelta
from functools import wraps
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from wulang.core.database import session_scope
from wulang.core.errors import DatabaseError, ValidationError
from wulang.core.logging import get_logger
from wulang.models.conversation import Conversation, ConversationMessage, Media, Sender, utcnow
from wulang.schemas.conversation import MediaKind, MediaRecord, MessageRecord, MessageRole

logger = get_logger(__name__)


def _translate_errors(method):
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Database operation {method.__name__} failed: {e}")
            raise DatabaseError(f"{method.__name__} failed", {"error": str(e)}) from e
    return wrapper


def _delete_threads(db: Session, thread_ids: List[str]) -> int:
    if not thread_ids:
        return 0
    db.query(ConversationMessage).filter(
        ConversationMessage.conversation_id.in_(thread_ids)
    ).delete(synchronize_session=False)
    return db.query(Conversation).filter(
        Conversation.id.in_(thread_ids)
    ).delete(synchronize_session=False)


class ConversationRepository:
    """Persistence collaborator for the conversation pipeline."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # Threads

    @_translate_errors
    def find_active_thread(self, sender_id: str) -> Optional[str]:
        with session_scope(self.session_factory) as db:
            thread = (
                db.query(Conversation)
                .filter(Conversation.sender_id == sender_id)
                .order_by(Conversation.updated_at.desc())
                .first()
            )
            return thread.id if thread else None

    @_translate_errors
    def create_thread(self, sender_id: str) -> str:
        if not sender_id:
            raise ValidationError("Sender id is required", field="sender_id")
        with session_scope(self.session_factory) as db:
            thread = Conversation(sender_id=sender_id)
            db.add(thread)
            db.flush()
            return thread.id

    @_translate_errors
    def list_threads_for_sender(self, sender_id: str) -> List[Dict]:
        """Threads of a sender, most recently updated first, with message counts."""
        with session_scope(self.session_factory) as db:
            rows = (
                db.query(Conversation, func.count(ConversationMessage.id))
                .outerjoin(ConversationMessage, ConversationMessage.conversation_id == Conversation.id)
                .filter(Conversation.sender_id == sender_id)
                .group_by(Conversation.id)
                .order_by(Conversation.updated_at.desc())
                .all()
            )
            return [
                {
                    "id": thread.id,
                    "sender_id": thread.sender_id,
                    "created_at": thread.created_at,
                    "updated_at": thread.updated_at,
                    "message_count": count,
                }
                for thread, count in rows
            ]

    @_translate_errors
    def delete_threads_for_sender(self, sender_id: str) -> int:
        with session_scope(self.session_factory) as db:
            thread_ids = [
                row.id for row in
                db.query(Conversation.id).filter(Conversation.sender_id == sender_id)
            ]
            return _delete_threads(db, thread_ids)

    @_translate_errors
    def delete_threads_older_than(self, cutoff: datetime) -> int:
        with session_scope(self.session_factory) as db:
            thread_ids = [
                row.id for row in
                db.query(Conversation.id).filter(Conversation.updated_at < cutoff)
            ]
            return _delete_threads(db, thread_ids)

    # Messages

    @_translate_errors
    def append_message(
        self,
        thread_id: str,
        role: MessageRole,
        text: Optional[str] = None,
        media_id: Optional[str] = None,
    ) -> MessageRecord:
        with session_scope(self.session_factory) as db:
            message = self._add_message(db, thread_id, role, text, media_id, utcnow())
            db.flush()
            return MessageRecord.model_validate(message)

    @_translate_errors
    def append_turn(
        self,
        thread_id: str,
        user_text: Optional[str],
        user_media_id: Optional[str],
        bot_text: str,
        media_summary: Optional[str] = None,
        sender_name: Optional[str] = None,
    ) -> List[MessageRecord]:
        """Write the user turn and the bot turn together, or neither.

        The same transaction touches the thread, stores the media summary and
        records the thread owner as a sender, filling in ``sender_name`` when
        none is stored yet.
        """
        with session_scope(self.session_factory) as db:
            thread = db.query(Conversation).filter(Conversation.id == thread_id).first()
            if thread is None:
                raise DatabaseError("Conversation thread not found", {"thread_id": thread_id})

            now = utcnow()
            user_message = self._add_message(db, thread_id, MessageRole.USER, user_text, user_media_id, now)
            # Keep creation order stable for equal clock readings
            bot_message = self._add_message(
                db, thread_id, MessageRole.BOT, bot_text, None, now + timedelta(microseconds=1)
            )

            if user_media_id and media_summary:
                db.query(Media).filter(Media.id == user_media_id).update(
                    {Media.summary: media_summary}, synchronize_session=False
                )

            thread.updated_at = now
            self._register_sender(db, thread.sender_id, sender_name, now)

            db.flush()
            return [MessageRecord.model_validate(user_message), MessageRecord.model_validate(bot_message)]

    @_translate_errors
    def list_recent_messages(self, thread_id: str, limit: int) -> List[MessageRecord]:
        """The newest ``limit`` messages of a thread, oldest first."""
        with session_scope(self.session_factory) as db:
            newest = (
                db.query(ConversationMessage)
                .filter(ConversationMessage.conversation_id == thread_id)
                .order_by(ConversationMessage.created_at.desc())
                .limit(limit)
                .all()
            )
            return [MessageRecord.model_validate(message) for message in reversed(newest)]

    @_translate_errors
    def list_messages(self, thread_id: str, limit: int, offset: int) -> List[MessageRecord]:
        with session_scope(self.session_factory) as db:
            messages = (
                db.query(ConversationMessage)
                .filter(ConversationMessage.conversation_id == thread_id)
                .order_by(ConversationMessage.created_at.asc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [MessageRecord.model_validate(message) for message in messages]

    @_translate_errors
    def count_messages(self, thread_id: str) -> int:
        with session_scope(self.session_factory) as db:
            return db.query(func.count(ConversationMessage.id)).filter(
                ConversationMessage.conversation_id == thread_id
            ).scalar() or 0

    # Media

    @_translate_errors
    def create_media(self, sender_id: str, url: str, kind: MediaKind) -> MediaRecord:
        with session_scope(self.session_factory) as db:
            media = Media(sender_id=sender_id, url=url, kind=kind.value)
            db.add(media)
            db.flush()
            return MediaRecord.model_validate(media)

    @_translate_errors
    def delete_media(self, media_id: str) -> int:
        with session_scope(self.session_factory) as db:
            return db.query(Media).filter(Media.id == media_id).delete(synchronize_session=False)

    # Senders

    @_translate_errors
    def get_sender_name(self, sender_id: str) -> Optional[str]:
        with session_scope(self.session_factory) as db:
            sender = db.query(Sender).filter(Sender.id == sender_id).first()
            return sender.name if sender else None

    # Analytics

    @_translate_errors
    def stats(self) -> Dict:
        with session_scope(self.session_factory) as db:
            per_role = dict(
                db.query(ConversationMessage.role, func.count(ConversationMessage.id))
                .group_by(ConversationMessage.role)
                .all()
            )
            return {
                "total_threads": db.query(func.count(Conversation.id)).scalar() or 0,
                "total_messages": db.query(func.count(ConversationMessage.id)).scalar() or 0,
                "senders_count": db.query(func.count(func.distinct(Conversation.sender_id))).scalar() or 0,
                "total_media": db.query(func.count(Media.id)).scalar() or 0,
                "messages_per_role": per_role,
                "last_activity_at": db.query(func.max(Conversation.updated_at)).scalar(),
            }

    @staticmethod
    def _register_sender(db: Session, sender_id: str, name: Optional[str], now: datetime) -> Optional[str]:
        # A stored name is filled in once and never replaced
        name = (name or "").strip() or None
        sender = db.query(Sender).filter(Sender.id == sender_id).first()
        if sender is None:
            db.add(Sender(id=sender_id, name=name, created_at=now, updated_at=now))
            logger.info(
                "Created new sender",
                extra={"extra_data": {"sender_id": sender_id, "has_name": name is not None}}
            )
            return name
        if name and not sender.name:
            sender.name = name
            sender.updated_at = now
            logger.info("Updated sender name", extra={"extra_data": {"sender_id": sender_id}})
        return sender.name

    @staticmethod
    def _add_message(
        db: Session,
        thread_id: str,
        role: MessageRole,
        text: Optional[str],
        media_id: Optional[str],
        created_at: datetime,
    ) -> ConversationMessage:
        if not text and not media_id:
            raise ValidationError("A message needs content or media", field="content")
        message = ConversationMessage(
            conversation_id=thread_id,
            role=MessageRole(role).value,
            content=text or None,
            media_id=media_id,
            created_at=created_at,
        )
        db.add(message)
        return message
