"""
Shopify webhook endpoints.

SECURITY: All webhooks MUST verify HMAC signature before processing.
Shopify signs webhooks with the app's API secret.

Once a delivery is verified the endpoint always answers 200: Shopify retries
non-2xx responses and eventually disables the subscription, which is worse
than a dropped event. Handler failures are logged by the dispatcher.

Documentation: https://shopify.dev/docs/apps/webhooks/configuration/https
"""

import hmac
import json
import base64
import hashlib
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, HTTPException, status
from pydantic import BaseModel

from ncf_connector.api.dependencies import get_webhook_dispatcher
from ncf_connector.config.settings import get_settings
from ncf_connector.services.webhook_dispatcher import (
    WebhookDispatcher,
    WebhookEnvelope,
    TOPIC_APP_UNINSTALLED,
    TOPIC_SHOP_REDACT,
    TOPIC_CUSTOMERS_DATA_REQUEST,
    TOPIC_CUSTOMERS_REDACT,
    TOPIC_ORDERS_CREATE,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/shopify", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    message: str = "Webhook processed"


def verify_shopify_webhook(
    data: bytes,
    hmac_header: Optional[str],
    api_secret: Optional[str]
) -> bool:
    """
    Verify Shopify webhook HMAC signature.

    Shopify signs webhooks using HMAC-SHA256 with the app's API secret.

    Args:
        data: Raw request body bytes
        hmac_header: X-Shopify-Hmac-Sha256 header value
        api_secret: Shopify app API secret

    Returns:
        True if signature is valid, False otherwise
    """
    if not hmac_header or not api_secret:
        return False

    computed_hmac = hmac.new(
        api_secret.encode("utf-8"),
        data,
        hashlib.sha256
    )
    computed_digest = base64.b64encode(computed_hmac.digest()).decode("utf-8")

    # Constant-time comparison to prevent timing attacks
    return hmac.compare_digest(computed_digest, hmac_header)


async def get_verified_webhook(request: Request) -> tuple[Dict[str, Any], str, Optional[str]]:
    """
    Get and verify the webhook body with its HMAC signature.

    Returns:
        Tuple of (parsed body dict, shop domain, topic header)

    Raises:
        HTTPException: If verification fails
    """
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256")
    if not hmac_header:
        logger.warning("Missing HMAC header in webhook")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing HMAC signature"
        )

    shop_domain = request.headers.get("X-Shopify-Shop-Domain")
    if not shop_domain:
        logger.warning("Missing shop domain header in webhook")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing shop domain"
        )

    api_secret = get_settings().shopify_api_secret
    if not api_secret:
        logger.error("SHOPIFY_API_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook verification not configured"
        )

    body = await request.body()

    if not verify_shopify_webhook(body, hmac_header, api_secret):
        logger.warning("Invalid webhook HMAC", extra={
            "shop_domain": shop_domain
        })
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid HMAC signature"
        )

    try:
        data = json.loads(body) if body else {}
    except json.JSONDecodeError:
        logger.error("Invalid JSON in webhook body", extra={"shop_domain": shop_domain})
        data = {}

    if not isinstance(data, dict):
        data = {}

    return data, shop_domain, request.headers.get("X-Shopify-Topic")


async def _dispatch(
    request: Request,
    dispatcher: WebhookDispatcher,
    topic: Optional[str] = None,
) -> WebhookResponse:
    payload, shop_domain, topic_header = await get_verified_webhook(request)

    envelope = WebhookEnvelope(
        shop_domain=shop_domain,
        topic=topic or topic_header or "",
        payload=payload,
    )
    result = await dispatcher.dispatch(envelope)
    return WebhookResponse(message=result.message)


@router.post("", response_model=WebhookResponse)
async def handle_webhook(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """Single endpoint for all topics, routed by the X-Shopify-Topic header."""
    return await _dispatch(request, dispatcher)


@router.post("/app-uninstalled", response_model=WebhookResponse)
async def handle_app_uninstalled(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """
    Handle app/uninstalled.

    Marks the shop inactive and removes its sessions. Data is kept until
    shop/redact in case the merchant reinstalls.
    """
    return await _dispatch(request, dispatcher, TOPIC_APP_UNINSTALLED)


@router.post("/shop-redact", response_model=WebhookResponse)
async def handle_shop_redact(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """
    Handle shop/redact (GDPR compliance).

    Sent 48 hours after uninstall; deletes everything stored for the shop.
    """
    return await _dispatch(request, dispatcher, TOPIC_SHOP_REDACT)


@router.post("/customers-data-request", response_model=WebhookResponse)
async def handle_customers_data_request(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """Handle customers/data_request (GDPR compliance)."""
    return await _dispatch(request, dispatcher, TOPIC_CUSTOMERS_DATA_REQUEST)


@router.post("/customers-redact", response_model=WebhookResponse)
async def handle_customers_redact(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """
    Handle customers/redact (GDPR compliance).

    Fiscal invoices are subject to legal retention and are not erased here.
    """
    return await _dispatch(request, dispatcher, TOPIC_CUSTOMERS_REDACT)


@router.post("/orders-create", response_model=WebhookResponse)
async def handle_orders_create(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
):
    """Handle orders/create by relaying the order to NCF Manager."""
    return await _dispatch(request, dispatcher, TOPIC_ORDERS_CREATE)
