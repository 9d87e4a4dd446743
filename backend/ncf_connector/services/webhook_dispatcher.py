"""
Shopify webhook dispatcher.

Routes each verified webhook to exactly one handler by topic:
- app/uninstalled: deactivate the shop
- shop/redact: purge the shop's data
- customers/data_request, customers/redact: log and acknowledge
- orders/create: relay the order to NCF Manager

Shopify delivers at least once and disables a subscription that keeps
getting non-2xx responses, so every handler failure is logged and turned
into an acknowledgment.

Only the lifecycle topics open a database session, so orders/create keeps
being relayed and acknowledged while the database is unavailable.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Optional

from ncf_connector.database.session import session_scope
from ncf_connector.integrations.ncf_manager.client import NcfManagerClient, get_ncf_manager_client
from ncf_connector.integrations.ncf_manager.exceptions import NcfManagerError
from ncf_connector.services.shop_lifecycle import ShopLifecycleService

logger = logging.getLogger(__name__)

TOPIC_APP_UNINSTALLED = "app/uninstalled"
TOPIC_SHOP_REDACT = "shop/redact"
TOPIC_CUSTOMERS_DATA_REQUEST = "customers/data_request"
TOPIC_CUSTOMERS_REDACT = "customers/redact"
TOPIC_ORDERS_CREATE = "orders/create"

# Enum-style names used by some Shopify tooling
TOPIC_ALIASES = {
    "APP_UNINSTALLED": TOPIC_APP_UNINSTALLED,
    "SHOP_REDACT": TOPIC_SHOP_REDACT,
    "CUSTOMERS_DATA_REQUEST": TOPIC_CUSTOMERS_DATA_REQUEST,
    "CUSTOMERS_REDACT": TOPIC_CUSTOMERS_REDACT,
    "ORDERS_CREATE": TOPIC_ORDERS_CREATE,
}


def normalize_topic(topic: Optional[str]) -> str:
    if not topic:
        return ""
    topic = topic.strip()
    return TOPIC_ALIASES.get(topic.upper(), topic.lower())


@dataclass
class WebhookEnvelope:
    """One verified webhook delivery."""
    shop_domain: str
    topic: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookResult:
    """
    Result of dispatching a webhook.

    acknowledged is always True; handled is False when the handler failed or
    the topic is unknown.
    """
    topic: str
    handled: bool
    message: str
    acknowledged: bool = True
    error: Optional[str] = None


class WebhookDispatcher:
    """Dispatches verified webhooks to lifecycle and relay handlers."""

    def __init__(
        self,
        lifecycle: Optional[ShopLifecycleService] = None,
        ncf_client_factory: Callable[[], NcfManagerClient] = get_ncf_manager_client,
    ):
        self.lifecycle = lifecycle
        self._ncf_client_factory = ncf_client_factory
        self._handlers = {
            TOPIC_APP_UNINSTALLED: self._handle_app_uninstalled,
            TOPIC_SHOP_REDACT: self._handle_shop_redact,
            TOPIC_CUSTOMERS_DATA_REQUEST: self._handle_customer_privacy_request,
            TOPIC_CUSTOMERS_REDACT: self._handle_customer_privacy_request,
            TOPIC_ORDERS_CREATE: self._handle_order_create,
        }

    @contextmanager
    def _lifecycle_scope(self) -> Iterator[ShopLifecycleService]:
        if self.lifecycle is not None:
            yield self.lifecycle
            return
        with session_scope() as db:
            yield ShopLifecycleService(db)

    async def dispatch(self, envelope: WebhookEnvelope) -> WebhookResult:
        topic = normalize_topic(envelope.topic)

        logger.info("Webhook received", extra={
            "shop_domain": envelope.shop_domain,
            "topic": topic
        })

        handler = self._handlers.get(topic)
        if handler is None:
            logger.warning("Unhandled webhook topic", extra={
                "shop_domain": envelope.shop_domain,
                "topic": envelope.topic
            })
            return WebhookResult(topic=topic, handled=False, message="Topic not handled")

        try:
            message = await handler(envelope)
        except Exception as e:
            logger.exception("Error processing webhook", extra={
                "shop_domain": envelope.shop_domain,
                "topic": topic,
                "error": str(e)
            })
            return WebhookResult(
                topic=topic,
                handled=False,
                message="Webhook acknowledged with errors",
                error=str(e),
            )

        return WebhookResult(topic=topic, handled=True, message=message)

    async def _handle_app_uninstalled(self, envelope: WebhookEnvelope) -> str:
        with self._lifecycle_scope() as lifecycle:
            deactivated = lifecycle.deactivate_on_uninstall(envelope.shop_domain)
        if deactivated:
            return "Shop deactivated"
        return "No shop to deactivate"

    async def _handle_shop_redact(self, envelope: WebhookEnvelope) -> str:
        with self._lifecycle_scope() as lifecycle:
            purged = lifecycle.purge_on_redact(envelope.shop_domain)
        if purged:
            return "Shop data deleted"
        return "No shop data to delete"

    async def _handle_customer_privacy_request(self, envelope: WebhookEnvelope) -> str:
        # Fiscal documents fall under legal retention; requests are fulfilled out of band
        customer = envelope.payload.get("customer") or {}
        logger.info("Customer privacy request acknowledged", extra={
            "shop_domain": envelope.shop_domain,
            "topic": normalize_topic(envelope.topic),
            "customer_id": customer.get("id"),
            "orders_requested": envelope.payload.get("orders_requested")
                or envelope.payload.get("orders_to_redact")
        })
        return "Customer request acknowledged"

    async def _handle_order_create(self, envelope: WebhookEnvelope) -> str:
        order_name = envelope.payload.get("name")
        try:
            async with self._ncf_client_factory() as client:
                await client.forward_order(envelope.shop_domain, TOPIC_ORDERS_CREATE, envelope.payload)
        except NcfManagerError as e:
            logger.error("Error sending order to NCF Manager", extra={
                "shop_domain": envelope.shop_domain,
                "order_name": order_name,
                "status_code": e.status_code,
                "error": str(e)
            })
            return "Order relay failed"

        logger.info("Order sent to NCF Manager", extra={
            "shop_domain": envelope.shop_domain,
            "order_name": order_name
        })
        return "Order relayed"
