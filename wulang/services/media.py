"""
Attachment ingestion: validation, file storage and media records.
"""
import asyncio
import re
import time
import uuid
from pathlib import Path
from typing import Optional, Protocol

from wulang.core.errors import DatabaseError, ProcessingError, ValidationError
from wulang.core.logging import get_logger
from wulang.schemas.conversation import MediaKind, MediaRecord
from wulang.services.repository import ConversationRepository

logger = get_logger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]+")


class MediaIngestor(Protocol):
    async def ingest(
        self, sender_id: str, payload: bytes, filename: str, content_type: str
    ) -> MediaRecord:
        ...

    async def discard(self, media: MediaRecord) -> None:
        ...


class FileMediaStore:
    """
    Stores attachments under ``media_dir`` and records them in the database.

    Files are transient: maintenance removes them after a retention period
    while the media row and its summary remain.
    """

    def __init__(self, repository: ConversationRepository, media_dir: str, max_size_mb: float = 10):
        self.repository = repository
        self.media_dir = Path(media_dir)
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    async def ingest(
        self, sender_id: str, payload: bytes, filename: str, content_type: str
    ) -> MediaRecord:
        if not payload:
            raise ValidationError("Attachment is empty", field="attachment")
        if len(payload) > self.max_size_bytes:
            raise ValidationError("File size exceeds limit", field="attachment")

        kind = MediaKind.from_content_type(content_type)
        path = self.media_dir / f"{uuid.uuid4().hex}_{self._safe_name(filename)}"
        try:
            await asyncio.to_thread(self._write, path, payload)
        except OSError as e:
            raise ProcessingError("Failed to store attachment", {"error": str(e)}) from e

        try:
            media = self.repository.create_media(sender_id, str(path), kind)
        except DatabaseError:
            path.unlink(missing_ok=True)
            raise
        logger.info(
            "Stored media",
            extra={"extra_data": {
                "sender_id": sender_id,
                "media_id": media.id,
                "kind": kind.value,
                "size": len(payload),
            }}
        )
        return media

    async def discard(self, media: MediaRecord) -> None:
        """Remove a record and its file for a turn that was never stored."""
        self.repository.delete_media(media.id)
        await asyncio.to_thread(Path(media.url).unlink, missing_ok=True)
        logger.info("Discarded media", extra={"extra_data": {"media_id": media.id}})

    def cleanup_old_files(self, max_age_hours: float) -> int:
        """Delete stored files older than ``max_age_hours``; returns how many were removed."""
        if not self.media_dir.exists():
            return 0
        cutoff = time.time() - max_age_hours * 60 * 60
        removed = 0
        for path in self.media_dir.iterdir():
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        logger.info(f"Cleaned up {removed} media files older than {max_age_hours} hours")
        return removed

    def _write(self, path: Path, payload: bytes) -> None:
        self.media_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

    @staticmethod
    def _safe_name(filename: Optional[str]) -> str:
        name = _UNSAFE_FILENAME.sub("_", Path(filename or "media_file").name).strip("._")
        return name[:100] or "media_file"
