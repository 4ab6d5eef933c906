"""
FastAPI dependencies.

Components live on `app.state` (set up by `create_app`); routes pull them
through these helpers so tests can build apps with their own components.
"""

from collections.abc import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from wa_inbox.config.provider import ConfigProvider
from wa_inbox.logging import FailureSink
from wa_inbox.media.store import MediaStore
from wa_inbox.providers.meta_cloud.client import MetaCloudClient
from wa_inbox.service.webhook_processor import WebhookProcessor


def get_session(request: Request) -> Iterator[Session]:
    """Yield a database session and ensure it's closed after use."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_config(request: Request) -> ConfigProvider:
    return request.app.state.config


def get_client(request: Request) -> MetaCloudClient:
    return request.app.state.client


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store


def get_processor(request: Request) -> WebhookProcessor:
    return request.app.state.processor


def get_failures(request: Request) -> FailureSink:
    return request.app.state.failures
