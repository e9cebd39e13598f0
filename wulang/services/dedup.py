"""
Duplicate and non-applicable message filtering.
"""
from typing import Dict

from wulang.core.logging import get_logger

logger = get_logger(__name__)


class DedupFilter:
    """
    Bounded FIFO cache of processed transport message ids.

    When the cache grows past ``max_size`` only the ``retain`` most recently
    inserted ids are kept. An id evicted this way is accepted again if the
    transport redelivers it.
    """

    def __init__(self, max_size: int = 1000, retain: int = 500):
        if retain > max_size:
            raise ValueError("retain must not exceed max_size")
        self.max_size = max_size
        self.retain = retain
        # dict preserves insertion order
        self._seen: Dict[str, None] = {}

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._seen

    def accept(self, message_id: str, sender_is_self: bool, sender_is_group: bool) -> bool:
        """Return True if the message should be processed, recording its id."""
        if sender_is_self or sender_is_group:
            return False

        if message_id in self._seen:
            logger.debug(
                "Skipping duplicate message",
                extra={"extra_data": {"message_id": message_id}}
            )
            return False

        self._seen[message_id] = None
        if len(self._seen) > self.max_size:
            self._evict()
        return True

    def _evict(self) -> None:
        kept = list(self._seen)[-self.retain:]
        self._seen = dict.fromkeys(kept)
        logger.debug(f"Trimmed processed message cache to last {self.retain} ids")
