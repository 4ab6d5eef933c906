from wa_inbox.config.provider import ConfigProvider, WhatsAppCredentials

__all__ = ["ConfigProvider", "WhatsAppCredentials"]
