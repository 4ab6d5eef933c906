"""
WhatsApp configuration endpoints. Secrets are never returned.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from wa_inbox.api.deps import get_client, get_config
from wa_inbox.config.provider import ConfigProvider, WhatsAppCredentials
from wa_inbox.contracts.payloads import (
    ConfigStatus,
    ConfigUpdate,
    ConnectionTestRequest,
    ConnectionTestResult,
)
from wa_inbox.errors import ProviderError
from wa_inbox.providers.meta_cloud.client import MetaCloudClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/whatsapp", tags=["config"])


def _status(credentials: WhatsAppCredentials) -> ConfigStatus:
    return ConfigStatus(
        is_configured=credentials.is_configured,
        source=credentials.source,
        phone_number_id=credentials.phone_number_id or None,
        webhook_url=credentials.webhook_url or None,
        has_access_token=bool(credentials.access_token),
        has_verify_token=bool(credentials.verify_token),
        last_configured=credentials.last_configured,
    )


@router.get("/config", response_model=ConfigStatus)
def get_whatsapp_config(config: ConfigProvider = Depends(get_config)):
    return _status(config.get())


@router.post("/config", response_model=ConfigStatus)
def update_whatsapp_config(update: ConfigUpdate, config: ConfigProvider = Depends(get_config)):
    credentials = config.save(
        access_token=update.access_token,
        phone_number_id=update.phone_number_id,
        webhook_url=update.webhook_url,
        verify_token=update.verify_token,
    )
    return _status(credentials)


@router.delete("/config", response_model=ConfigStatus)
def clear_whatsapp_config(config: ConfigProvider = Depends(get_config)):
    return _status(config.clear())


@router.post("/test-connection", response_model=ConnectionTestResult)
async def check_connection(
    body: ConnectionTestRequest | None = None,
    config: ConfigProvider = Depends(get_config),
    client: MetaCloudClient = Depends(get_client),
):
    """
    Check credentials against the Graph API by reading the phone number record.

    Credentials missing from the body are taken from the active configuration.
    """
    body = body or ConnectionTestRequest()
    credentials = config.get()
    access_token = body.access_token or credentials.access_token
    phone_number_id = body.phone_number_id or credentials.phone_number_id

    if not access_token or not phone_number_id:
        raise HTTPException(
            status_code=400,
            detail="Access token and phone number ID are required",
        )

    try:
        data = await client.get_phone_number(phone_number_id, access_token)
    except ProviderError as e:
        logger.warning(
            f"WhatsApp connection test failed: {e}",
            extra={"phone_number_id": phone_number_id, "error_code": e.code},
        )
        raise HTTPException(
            status_code=400,
            detail=ConnectionTestResult(
                success=False,
                message="Failed to connect to WhatsApp API",
                phone_number_id=phone_number_id,
                error=str(e),
            ).model_dump(),
        )

    return ConnectionTestResult(
        success=True,
        message="Connected to WhatsApp Business API",
        phone_number_id=phone_number_id,
        display_phone_number=data.get("display_phone_number"),
        verified_name=data.get("verified_name"),
        quality_rating=data.get("quality_rating"),
    )
