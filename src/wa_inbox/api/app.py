"""
WhatsApp Inbox API

FastAPI application that receives WhatsApp webhooks from the Meta Cloud API
and serves the inbox.

Responsibilities:
- Verify and ingest webhook deliveries
- Download and store inbound media
- Send outbound messages
- Expose conversations, history, media and configuration
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from wa_inbox import __version__
from wa_inbox.api.routes import config as config_routes
from wa_inbox.api.routes import media as media_routes
from wa_inbox.api.routes import messages as messages_routes
from wa_inbox.api.routes import webhook as webhook_routes
from wa_inbox.config.provider import ConfigProvider
from wa_inbox.db import build_engine, init_db
from wa_inbox.logging import FailureSink, setup_logging
from wa_inbox.media.fetcher import MediaFetcher
from wa_inbox.media.processing import MediaProcessor
from wa_inbox.media.store import MediaStore
from wa_inbox.providers.meta_cloud.client import MetaCloudClient
from wa_inbox.service.webhook_processor import WebhookProcessor
from wa_inbox.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
    client: MetaCloudClient | None = None,
    processor: MediaProcessor | None = None,
) -> FastAPI:
    """
    Build the application and its components.

    Args:
        settings: Settings (defaults to environment)
        session_factory: Session factory (defaults to one bound to DATABASE_URL)
        client: Graph API client (tests pass one with a mock transport)
        processor: Media processor used for metadata and thumbnails
    """
    settings = settings or get_settings()
    session_factory = session_factory or sessionmaker(
        bind=build_engine(settings.DATABASE_URL),
        autoflush=False,
        expire_on_commit=False,
    )
    client = client or MetaCloudClient(
        base_url=settings.GRAPH_API_BASE_URL,
        timeout=settings.HTTP_TIMEOUT,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(session_factory.kw["bind"])
        logger.info("WhatsApp inbox service started")
        yield
        await client.close()

    app = FastAPI(
        title="WhatsApp Inbox",
        description="WhatsApp Business webhook ingestion, media pipeline and messaging",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    config = ConfigProvider(session_factory, settings)
    failures = FailureSink()
    media_store = MediaStore(settings.MEDIA_ROOT, processor=processor)

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.client = client
    app.state.config = config
    app.state.failures = failures
    app.state.media_store = media_store
    app.state.processor = WebhookProcessor(
        session_factory,
        config,
        fetcher=MediaFetcher(client),
        store=media_store,
        failures=failures,
    )

    app.include_router(webhook_routes.router)
    app.include_router(messages_routes.router)
    app.include_router(media_routes.router)
    app.include_router(config_routes.router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "wa-inbox",
            "failures": failures.snapshot(),
        }

    return app


def main() -> FastAPI:
    """Entry point for `uvicorn wa_inbox.api.app:main --factory`."""
    setup_logging()
    return create_app()
