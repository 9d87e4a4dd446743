"""
NCF Manager API client.

NCF Manager is the canonical source of plan, usage and entitlement data for a
shop across every channel it can pay through. This client handles:
- Effective plan lookup
- Access token hand-off
- Billing and order notifications

Every call is a single attempt. Callers decide whether a failure is fatal;
within the connector none of them are.

SECURITY:
- Access tokens are sent in request bodies only and never logged
"""

import logging
from typing import Optional, Dict, Any

import httpx

from ncf_connector.config.settings import get_settings
from ncf_connector.integrations.ncf_manager.exceptions import (
    NcfManagerConnectionError,
    NcfManagerTimeoutError,
    NcfManagerResponseError,
)
from ncf_connector.integrations.ncf_manager.models import PlanSnapshot

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0

SHOP_HEADER = "X-Shopify-Shop"
TOPIC_HEADER = "X-Shopify-Topic"

PLAN_ENDPOINT = "/api/shop/plan"
TOKEN_SYNC_ENDPOINT = "/api/webhooks/shopify/token-sync"
BILLING_ENDPOINT = "/api/webhooks/shopify/billing"
ORDER_ENDPOINT = "/api/webhooks/shopify/order"


class NcfManagerClient:
    """
    Async client for the NCF Manager API.

    All requests identify the shop with the X-Shopify-Shop header.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
    ):
        """
        Initialize NCF Manager client.

        Args:
            base_url: API base URL (default: NCF_MANAGER_URL setting)
            timeout: Request timeout in seconds (default: NCF_MANAGER_TIMEOUT_SECONDS setting)
            connect_timeout: Connection timeout in seconds
        """
        settings = get_settings()
        self.base_url = (base_url or settings.ncf_manager_url).rstrip("/")
        timeout = timeout if timeout is not None else settings.ncf_manager_timeout_seconds

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(connect_timeout, timeout)),
            headers={"Content-Type": "application/json"},
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "NcfManagerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        shop_domain: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make one HTTP request to NCF Manager.

        Raises:
            NcfManagerTimeoutError: On timeout
            NcfManagerConnectionError: On network errors
            NcfManagerResponseError: On non-2xx responses
        """
        url = f"{self.base_url}{endpoint}"
        request_headers = {SHOP_HEADER: shop_domain}
        if headers:
            request_headers.update(headers)

        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json,
                headers=request_headers,
            )
        except httpx.TimeoutException as e:
            raise NcfManagerTimeoutError(f"Request to {endpoint} timed out: {e}")
        except httpx.RequestError as e:
            raise NcfManagerConnectionError(f"Request to {endpoint} failed: {e}")

        if response.status_code >= 400:
            logger.warning("NCF Manager API error", extra={
                "shop_domain": shop_domain,
                "endpoint": endpoint,
                "status_code": response.status_code,
            })
            raise NcfManagerResponseError(
                f"NCF Manager returned {response.status_code} for {endpoint}",
                status_code=response.status_code,
            )

        return response

    async def get_shop_plan(self, shop_domain: str) -> PlanSnapshot:
        """
        Get the shop's effective plan and usage.

        Raises:
            NcfManagerError: On any failure, including an unparseable body
        """
        response = await self._request("GET", PLAN_ENDPOINT, shop_domain)

        try:
            return PlanSnapshot.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise NcfManagerResponseError(
                f"Malformed plan response: {e}",
                status_code=response.status_code,
            )

    async def sync_token(self, shop_domain: str, access_token: str) -> None:
        """Hand the shop's current Admin API access token to NCF Manager."""
        await self._request(
            "POST",
            TOKEN_SYNC_ENDPOINT,
            shop_domain,
            json={"shop": shop_domain, "accessToken": access_token},
        )

    async def notify_billing(
        self,
        shop_domain: str,
        action: str,
        plan: str,
        charge_id: Optional[str],
    ) -> None:
        """Tell NCF Manager about a confirmed Shopify billing change."""
        await self._request(
            "POST",
            BILLING_ENDPOINT,
            shop_domain,
            json={"action": action, "plan": plan, "shopifyChargeId": charge_id},
        )

    async def forward_order(self, shop_domain: str, topic: str, order: Dict[str, Any]) -> None:
        """Relay an order webhook payload verbatim."""
        await self._request(
            "POST",
            ORDER_ENDPOINT,
            shop_domain,
            json={"action": "create", "order": order, "shop": shop_domain},
            headers={TOPIC_HEADER: topic},
        )


def get_ncf_manager_client() -> NcfManagerClient:
    """Factory function to create an NcfManagerClient from settings."""
    return NcfManagerClient()
