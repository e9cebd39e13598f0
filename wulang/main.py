"""
FastAPI application factory and configuration.
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wulang.container import build_services
from wulang.core.config import Settings, get_settings
from wulang.core.database import init_db
from wulang.core.logging import setup_logging, get_logger
from wulang.api import webhook, conversations, stats, health, metrics, maintenance
from wulang.api.metrics import MetricsMiddleware, set_startup_time
from wulang.services.responder import Responder
from wulang.services.transport import ReplySender


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger = get_logger(__name__)
    services = app.state.services
    settings = services.settings
    logger.info(f"Starting {settings.bot_name}...")

    init_db(services.engine)
    logger.info("Database initialized")

    services.scheduler.start()
    set_startup_time()

    logger.info(
        "Configuration loaded",
        extra={
            "extra_data": {
                "bot_name": settings.bot_name,
                "trigger_keyword": settings.trigger_keyword,
                "reset_keyword": settings.reset_keyword,
                "max_context_messages": settings.max_context_messages,
                "ai_configured": settings.is_ai_configured,
                "reply_webhook_configured": services.reply_sender.is_configured,
            }
        }
    )

    yield

    logger.info(f"Shutting down {settings.bot_name}...")
    await services.aclose()


def create_app(
    settings: Optional[Settings] = None,
    responder: Optional[Responder] = None,
    reply_sender: Optional[ReplySender] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    setup_logging(settings)
    logger = get_logger(__name__)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="WhatsApp bridge webhook that routes chat messages to an AI responder",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = build_services(settings, responder=responder, reply_sender=reply_sender)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(MetricsMiddleware)

    app.include_router(webhook.router)
    app.include_router(maintenance.router)
    app.include_router(conversations.router)
    app.include_router(stats.router)
    app.include_router(health.router)
    app.include_router(metrics.router)

    logger.info(
        "Application created",
        extra={
            "extra_data": {
                "app_name": settings.app_name,
                "version": settings.app_version,
                "debug": settings.debug,
            }
        }
    )

    return app


# Create the application instance
app = create_app()
