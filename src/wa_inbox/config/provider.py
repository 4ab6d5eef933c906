"""
WhatsApp Configuration Provider

Holds the Cloud API credentials used by the webhook, media and outbound
components. The active `whatsapp_config` row overrides environment
defaults; every write reloads the cached view.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session, sessionmaker

from wa_inbox.errors import ConfigurationError
from wa_inbox.persistence.repo import InboxRepository
from wa_inbox.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WhatsAppCredentials:
    """Snapshot of the credentials in effect."""

    access_token: str
    phone_number_id: str
    webhook_url: str
    verify_token: str
    source: str  # "database" or "environment"
    last_configured: datetime | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def require(self) -> "WhatsAppCredentials":
        """Return self, or raise if outbound credentials are missing."""
        if not self.is_configured:
            raise ConfigurationError(
                "WhatsApp not configured: access token and phone number ID are required"
            )
        return self


class ConfigProvider:
    """
    Explicit configuration object passed to each component.

    Reads go through an in-memory snapshot; `save()` and `clear()` write to
    the database and reload the snapshot before returning.
    """

    def __init__(self, session_factory: sessionmaker[Session], settings: Settings):
        self.session_factory = session_factory
        self.settings = settings
        self._fernet = (
            Fernet(settings.WHATSAPP_ENCRYPTION_KEY.encode())
            if settings.WHATSAPP_ENCRYPTION_KEY
            else None
        )
        self._lock = threading.Lock()
        self._cached: WhatsAppCredentials | None = None

    @property
    def app_secret(self) -> str:
        return self.settings.WHATSAPP_APP_SECRET

    def get(self) -> WhatsAppCredentials:
        """Get the current credentials (loaded on first use)."""
        with self._lock:
            if self._cached is None:
                self._cached = self._load()
            return self._cached

    def reload(self) -> WhatsAppCredentials:
        with self._lock:
            self._cached = self._load()
            return self._cached

    def save(
        self,
        access_token: str,
        phone_number_id: str,
        webhook_url: str | None = None,
        verify_token: str | None = None,
    ) -> WhatsAppCredentials:
        """Store a new active configuration and reload."""
        if not access_token or not phone_number_id:
            raise ConfigurationError("Access token and phone number ID are required")

        db = self.session_factory()
        try:
            repo = InboxRepository(db)
            repo.deactivate_configs()
            repo.create_config(
                access_token=self._encrypt(access_token),
                phone_number_id=phone_number_id,
                webhook_url=webhook_url or "",
                verify_token=verify_token or self.settings.WHATSAPP_VERIFY_TOKEN,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info("WhatsApp configuration saved", extra={"phone_number_id": phone_number_id})
        return self.reload()

    def clear(self) -> WhatsAppCredentials:
        """Deactivate stored configuration, falling back to environment defaults."""
        db = self.session_factory()
        try:
            InboxRepository(db).deactivate_configs()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info("WhatsApp configuration cleared")
        return self.reload()

    def _load(self) -> WhatsAppCredentials:
        db = self.session_factory()
        try:
            row = InboxRepository(db).get_active_config()
        finally:
            db.close()

        if row is None:
            return self._from_environment()

        return WhatsAppCredentials(
            access_token=self._decrypt(row.access_token),
            phone_number_id=row.phone_number_id,
            webhook_url=row.webhook_url or "",
            verify_token=row.verify_token or self.settings.WHATSAPP_VERIFY_TOKEN,
            source="database",
            last_configured=row.updated_at,
        )

    def _from_environment(self) -> WhatsAppCredentials:
        return WhatsAppCredentials(
            access_token=self.settings.WHATSAPP_ACCESS_TOKEN,
            phone_number_id=self.settings.WHATSAPP_PHONE_NUMBER_ID,
            webhook_url=self.settings.WHATSAPP_WEBHOOK_URL,
            verify_token=self.settings.WHATSAPP_VERIFY_TOKEN,
            source="environment",
        )

    def _encrypt(self, value: str) -> str:
        if self._fernet is None:
            logger.warning("WHATSAPP_ENCRYPTION_KEY not set, storing access token unencrypted")
            return value
        return self._fernet.encrypt(value.encode()).decode()

    def _decrypt(self, value: str) -> str:
        if self._fernet is None:
            return value
        try:
            return self._fernet.decrypt(value.encode()).decode()
        except InvalidToken:
            # Rows written before a key was configured are stored in clear
            logger.warning("Stored access token is not encrypted with the current key")
            return value
