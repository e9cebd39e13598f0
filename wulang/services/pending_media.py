"""
Per-sender staging of attachments that arrived without a caption.
"""
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from wulang.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PendingMedia:
    """An uploaded attachment waiting for the sender's follow-up question."""
    payload: bytes
    filename: str
    content_type: str
    staged_at: float = field(default_factory=time.time)

    def age(self, now: float) -> float:
        return now - self.staged_at


class PendingMediaStore:
    """
    Single-slot-per-sender store. Staging overwrites, consuming is idempotent.

    Entries older than ``max_age`` seconds are treated as absent and dropped
    when read. Not thread-safe: callers serialize access per turn.
    """

    def __init__(self, max_age: float = 24 * 60 * 60, clock: Callable[[], float] = time.time):
        self.max_age = max_age
        self._clock = clock
        self._entries: Dict[str, PendingMedia] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def stage(self, sender_id: str, entry: PendingMedia) -> None:
        replaced = sender_id in self._entries
        self._entries[sender_id] = entry
        logger.info(
            "Staged pending media",
            extra={"extra_data": {
                "sender_id": sender_id,
                "filename": entry.filename,
                "content_type": entry.content_type,
                "replaced": replaced,
            }}
        )

    def peek(self, sender_id: str) -> Optional[PendingMedia]:
        entry = self._entries.get(sender_id)
        if entry is None:
            return None
        if entry.age(self._clock()) >= self.max_age:
            del self._entries[sender_id]
            logger.info("Dropped expired pending media", extra={"extra_data": {"sender_id": sender_id}})
            return None
        return entry

    def has(self, sender_id: str) -> bool:
        return self.peek(sender_id) is not None

    def consume(self, sender_id: str) -> None:
        if self._entries.pop(sender_id, None) is not None:
            logger.debug("Consumed pending media", extra={"extra_data": {"sender_id": sender_id}})

    def sweep_expired(self, max_age: Optional[float] = None) -> int:
        """Remove entries older than ``max_age`` seconds; returns how many were removed."""
        max_age = self.max_age if max_age is None else max_age
        now = self._clock()
        expired = [
            sender_id for sender_id, entry in self._entries.items()
            if entry.age(now) > max_age
        ]
        for sender_id in expired:
            del self._entries[sender_id]
        return len(expired)
