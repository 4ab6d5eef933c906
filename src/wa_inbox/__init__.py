"""
WhatsApp Inbox

Backend for a WhatsApp Business inbox:
- Webhook verification and ingestion (messages, delivery statuses)
- Media download, deduplicated storage and thumbnails
- Outbound sends through the Meta Graph API
"""

__version__ = "1.0.0"
