"""Meta Cloud API WhatsApp provider."""

from wa_inbox.providers.meta_cloud.client import MetaCloudClient
from wa_inbox.providers.meta_cloud.webhook import parse_webhook, verify_webhook_challenge

__all__ = [
    "MetaCloudClient",
    "parse_webhook",
    "verify_webhook_challenge",
]
