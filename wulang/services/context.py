"""
Thread resolution and sliding-window history for the responder.
"""
from typing import List, Optional

from wulang.core.errors import ValidationError
from wulang.core.logging import get_logger
from wulang.schemas.conversation import MessageRecord
from wulang.services.repository import ConversationRepository

logger = get_logger(__name__)


class ContextAssembler:
    """
    Owns every conversation-history write made on behalf of a sender.

    Only the newest ``window_size`` messages of a thread are handed to the
    responder; older ones stay in storage.
    """

    def __init__(self, repository: ConversationRepository, window_size: int = 10):
        self.repository = repository
        self.window_size = window_size

    def find_thread(self, sender_id: str) -> Optional[str]:
        return self.repository.find_active_thread(sender_id)

    def sender_name(self, sender_id: str) -> Optional[str]:
        return self.repository.get_sender_name(sender_id)

    def resolve_thread(self, sender_id: str) -> str:
        """Return the sender's active thread id, creating a thread if there is none."""
        if not sender_id:
            raise ValidationError("Sender id is required", field="sender_id")

        thread_id = self.repository.find_active_thread(sender_id)
        if thread_id:
            logger.debug(
                "Using existing conversation",
                extra={"extra_data": {"sender_id": sender_id, "thread_id": thread_id}}
            )
            return thread_id

        thread_id = self.repository.create_thread(sender_id)
        logger.info(
            "Created new conversation",
            extra={"extra_data": {"sender_id": sender_id, "thread_id": thread_id}}
        )
        return thread_id

    def build_context(self, thread_id: str, window_size: Optional[int] = None) -> List[MessageRecord]:
        size = self.window_size if window_size is None else window_size
        if size <= 0:
            return []
        history = self.repository.list_recent_messages(thread_id, size)
        logger.debug(
            f"Built context with {len(history)} messages",
            extra={"extra_data": {"thread_id": thread_id}}
        )
        return history

    def append_turn(
        self,
        thread_id: str,
        user_text: Optional[str],
        bot_text: str,
        user_media_id: Optional[str] = None,
        media_summary: Optional[str] = None,
        sender_name: Optional[str] = None,
    ) -> List[MessageRecord]:
        return self.repository.append_turn(
            thread_id,
            user_text=user_text,
            user_media_id=user_media_id,
            bot_text=bot_text,
            media_summary=media_summary,
            sender_name=sender_name,
        )

    def reset(self, sender_id: str) -> int:
        deleted = self.repository.delete_threads_for_sender(sender_id)
        logger.info(
            f"Deleted {deleted} conversations",
            extra={"extra_data": {"sender_id": sender_id}}
        )
        return deleted
