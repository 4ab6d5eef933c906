from wa_inbox.api.app import create_app

__all__ = ["create_app"]
