"""
Webhook Processor

Fans one parsed webhook delivery out into independent tasks, one per
message and per status update. Each task runs in its own database
session; a failing item is recorded in the failure sink and never
affects its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from wa_inbox.config.provider import ConfigProvider
from wa_inbox.logging import FailureSink
from wa_inbox.media.fetcher import MediaFetcher
from wa_inbox.media.store import MediaStore
from wa_inbox.providers.base import DeliveryStatus, InboundEnvelope, WebhookBatch
from wa_inbox.service.inbound_handler import InboundHandler
from wa_inbox.service.status_tracker import StatusTracker

logger = logging.getLogger(__name__)


@dataclass
class ProcessingSummary:
    messages: int = 0
    statuses: int = 0
    failed: int = 0


class WebhookProcessor:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: ConfigProvider,
        fetcher: MediaFetcher | None = None,
        store: MediaStore | None = None,
        failures: FailureSink | None = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.failures = failures or FailureSink()

    async def process(self, batch: WebhookBatch) -> ProcessingSummary:
        """Process every message and status of a delivery concurrently."""
        tasks = [self._process_message(envelope) for envelope in batch.messages]
        tasks += [self._process_status(status) for status in batch.statuses]

        outcomes = await asyncio.gather(*tasks)

        summary = ProcessingSummary(
            messages=len(batch.messages),
            statuses=len(batch.statuses),
            failed=outcomes.count(False),
        )
        logger.info(
            "Webhook processed",
            extra={
                "messages": summary.messages,
                "statuses": summary.statuses,
                "failed": summary.failed,
            },
        )
        return summary

    async def _process_message(self, envelope: InboundEnvelope) -> bool:
        db = self.session_factory()
        try:
            handler = InboundHandler(
                db,
                config=self.config,
                fetcher=self.fetcher,
                store=self.store,
                failures=self.failures,
            )
            await handler.handle(envelope)
            return True
        except Exception as e:
            db.rollback()
            self.failures.record(
                "message",
                e,
                whatsapp_message_id=envelope.message_id,
                message_type=envelope.message_type,
            )
            return False
        finally:
            db.close()

    async def _process_status(self, status: DeliveryStatus) -> bool:
        db = self.session_factory()
        try:
            StatusTracker(db).record(status)
            return True
        except Exception as e:
            db.rollback()
            self.failures.record(
                "status",
                e,
                whatsapp_message_id=status.message_id,
                status=status.status,
            )
            return False
        finally:
            db.close()
