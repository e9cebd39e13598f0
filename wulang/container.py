"""
Composition root: builds every service from settings with explicit constructor wiring.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine

from wulang.core.config import Settings
from wulang.core.database import create_db_engine, create_session_factory
from wulang.services.classifier import CommandClassifier
from wulang.services.context import ContextAssembler
from wulang.services.dedup import DedupFilter
from wulang.services.maintenance import MaintenanceScheduler, MaintenanceService
from wulang.services.media import FileMediaStore
from wulang.services.orchestrator import ConversationOrchestrator
from wulang.services.pending_media import PendingMediaStore
from wulang.services.repository import ConversationRepository
from wulang.services.responder import OpenAICompatibleResponder, Responder
from wulang.services.transport import ReplySender


@dataclass
class Services:
    settings: Settings
    engine: Engine
    repository: ConversationRepository
    pending_media: PendingMediaStore
    orchestrator: ConversationOrchestrator
    maintenance: MaintenanceService
    scheduler: MaintenanceScheduler
    reply_sender: ReplySender
    responder: Responder

    async def aclose(self) -> None:
        await self.scheduler.stop()
        await self.reply_sender.aclose()
        close = getattr(self.responder, "aclose", None)
        if close is not None:
            await close()
        self.engine.dispose()


def build_services(
    settings: Settings,
    responder: Optional[Responder] = None,
    reply_sender: Optional[ReplySender] = None,
) -> Services:
    engine = create_db_engine(settings.database_url, echo=settings.debug)
    repository = ConversationRepository(create_session_factory(engine))

    pending_media = PendingMediaStore(max_age=settings.pending_media_max_age_hours * 60 * 60)
    media_store = FileMediaStore(repository, settings.media_dir, settings.max_media_size_mb)

    if responder is None:
        responder = OpenAICompatibleResponder(
            api_key=settings.ai_api_key,
            model=settings.ai_model,
            base_url=settings.ai_api_base_url,
            bot_name=settings.bot_name,
            timeout=settings.ai_timeout_seconds,
        )
    if reply_sender is None:
        reply_sender = ReplySender(settings.reply_webhook_url, timeout=settings.reply_timeout_seconds)

    orchestrator = ConversationOrchestrator(
        dedup=DedupFilter(settings.dedup_cache_max_size, settings.dedup_cache_retain),
        classifier=CommandClassifier(settings.trigger_keyword, settings.reset_keyword),
        pending_media=pending_media,
        context=ContextAssembler(repository, window_size=settings.max_context_messages),
        responder=responder,
        media=media_store,
        ai_timeout=settings.ai_timeout_seconds,
    )

    maintenance = MaintenanceService(
        repository,
        pending_media,
        media_store,
        retention_days=settings.conversation_retention_days,
        pending_media_max_age_hours=settings.pending_media_max_age_hours,
        media_file_retention_hours=settings.media_file_retention_hours,
    )

    return Services(
        settings=settings,
        engine=engine,
        repository=repository,
        pending_media=pending_media,
        orchestrator=orchestrator,
        maintenance=maintenance,
        scheduler=MaintenanceScheduler(maintenance, settings.maintenance_interval_hours),
        reply_sender=reply_sender,
        responder=responder,
    )
