from wa_inbox.contracts.payloads import (
    ConfigStatus,
    ConfigUpdate,
    ConversationOut,
    MessageOut,
    SendMessageRequest,
    SendMessageResponse,
    WebhookAck,
)

__all__ = [
    "ConfigStatus",
    "ConfigUpdate",
    "ConversationOut",
    "MessageOut",
    "SendMessageRequest",
    "SendMessageResponse",
    "WebhookAck",
]
