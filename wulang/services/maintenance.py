"""
Scheduled and on-demand purging of stale conversations, staged media and media files.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wulang.core.logging import get_logger
from wulang.models.conversation import utcnow
from wulang.services.media import FileMediaStore
from wulang.services.pending_media import PendingMediaStore
from wulang.services.repository import ConversationRepository

logger = get_logger(__name__)


@dataclass
class MaintenanceReport:
    deleted_threads: int = 0
    expired_pending_media: int = 0
    deleted_media_files: int = 0
    errors: List[str] = field(default_factory=list)


class MaintenanceService:
    """
    Deletes only data no active flow can still reference: threads idle past
    the retention window, staged media past its age, and stored media files.
    Each task is isolated so one failure does not skip the others.
    """

    def __init__(
        self,
        repository: ConversationRepository,
        pending_media: PendingMediaStore,
        media_store: FileMediaStore,
        retention_days: int = 90,
        pending_media_max_age_hours: float = 24,
        media_file_retention_hours: float = 24,
    ):
        self.repository = repository
        self.pending_media = pending_media
        self.media_store = media_store
        self.retention_days = retention_days
        self.pending_media_max_age_hours = pending_media_max_age_hours
        self.media_file_retention_hours = media_file_retention_hours

    def run_maintenance(self) -> MaintenanceReport:
        logger.info("Starting maintenance tasks...")
        report = MaintenanceReport()

        try:
            cutoff = utcnow() - timedelta(days=self.retention_days)
            report.deleted_threads = self.repository.delete_threads_older_than(cutoff)
            logger.info(f"Cleaned up {report.deleted_threads} old conversations")
        except Exception as e:
            logger.exception("Error cleaning up old conversations")
            report.errors.append(f"conversations: {e}")

        try:
            report.expired_pending_media = self.pending_media.sweep_expired(
                self.pending_media_max_age_hours * 60 * 60
            )
            logger.info(f"Removed {report.expired_pending_media} expired pending media entries")
        except Exception as e:
            logger.exception("Error sweeping pending media")
            report.errors.append(f"pending_media: {e}")

        try:
            report.deleted_media_files = self.media_store.cleanup_old_files(self.media_file_retention_hours)
        except Exception as e:
            logger.exception("Error cleaning up media files")
            report.errors.append(f"media_files: {e}")

        logger.info(
            "Maintenance tasks completed",
            extra={"extra_data": {
                "deleted_threads": report.deleted_threads,
                "expired_pending_media": report.expired_pending_media,
                "deleted_media_files": report.deleted_media_files,
                "errors": len(report.errors),
            }}
        )
        return report


class MaintenanceScheduler:
    """
    Runs maintenance on an APScheduler interval job.

    The underlying ``AsyncIOScheduler`` binds to the running event loop, so
    ``start`` must be called from inside it (the FastAPI lifespan does).
    """

    JOB_ID = "maintenance"

    def __init__(self, service: MaintenanceService, interval_hours: float = 24):
        self.service = service
        self.interval_hours = interval_hours
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.is_running:
            return
        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.run_job,
            trigger=IntervalTrigger(hours=self.interval_hours),
            id=self.JOB_ID,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=3600,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(f"Scheduled maintenance every {self.interval_hours:g} hours")

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Stopped scheduled maintenance")

    async def run_job(self) -> None:
        """One scheduled run; failures are logged so later runs still happen."""
        logger.info("Running scheduled maintenance...")
        try:
            self.service.run_maintenance()
        except Exception:
            logger.exception("Error during scheduled maintenance")
