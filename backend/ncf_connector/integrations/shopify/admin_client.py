"""
Shopify Admin API client.

Uses the Shopify GraphQL Admin API for:
- Shop information (name, contact email)
- Recent orders
- Recurring app subscriptions (create and query)

All public Shopify apps MUST use Shopify Billing API for payments.

Documentation: https://shopify.dev/docs/apps/billing
"""

import logging
from typing import Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

import httpx

logger = logging.getLogger(__name__)

# Shopify API version - use stable version
SHOPIFY_API_VERSION = "2024-10"

ACTIVE_SUBSCRIPTION_STATUS = "ACTIVE"


class BillingInterval(str, Enum):
    """Billing interval for recurring charges."""
    EVERY_30_DAYS = "EVERY_30_DAYS"
    ANNUAL = "ANNUAL"


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class ShopInfo:
    """Store metadata returned by the `shop` query."""
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ShopifyOrder:
    """Summary of a Shopify order."""
    id: str  # GraphQL GID
    name: str
    total_price: Optional[str] = None
    currency_code: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ShopifySubscription:
    """Represents a Shopify AppSubscription from the API."""
    id: str  # GraphQL GID
    name: str
    status: str
    created_at: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    test: bool = False

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_SUBSCRIPTION_STATUS

    @classmethod
    def from_graphql(cls, data: dict) -> "ShopifySubscription":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            status=data.get("status", ""),
            created_at=_parse_datetime(data.get("createdAt")),
            current_period_end=_parse_datetime(data.get("currentPeriodEnd")),
            test=data.get("test", False),
        )


@dataclass
class CreateSubscriptionResult:
    """Result of creating a subscription."""
    confirmation_url: Optional[str] = None
    app_subscription: Optional[ShopifySubscription] = None
    user_errors: list = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.confirmation_url) and not self.user_errors


class ShopifyAPIError(Exception):
    """Error communicating with Shopify API."""
    def __init__(self, message: str, status_code: Optional[int] = None, response: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


SUBSCRIPTION_FIELDS = """
    id
    name
    status
    createdAt
    currentPeriodEnd
    test
"""


class ShopifyAdminClient:
    """
    Client for Shopify Admin GraphQL operations used by the connector.

    SECURITY: The access token is sent only in the request header and is never logged.
    """

    def __init__(self, shop_domain: str, access_token: str):
        """
        Initialize the client for a specific shop.

        Args:
            shop_domain: Shopify store domain (e.g., 'mystore.myshopify.com')
            access_token: Shopify Admin API access token
        """
        if not shop_domain:
            raise ValueError("shop_domain is required")
        if not access_token:
            raise ValueError("access_token is required")

        self.shop_domain = shop_domain.replace("https://", "").replace("http://", "").rstrip("/")
        self.access_token = access_token
        self.api_version = SHOPIFY_API_VERSION
        self.graphql_url = f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, connect=10.0),
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": self.access_token
            }
        )

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _execute_graphql(self, query: str, variables: Optional[dict] = None) -> dict:
        """
        Execute a GraphQL query against Shopify Admin API.

        Args:
            query: GraphQL query or mutation
            variables: Optional query variables

        Returns:
            GraphQL response data

        Raises:
            ShopifyAPIError: If the API call fails
        """
        payload = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = await self._client.post(self.graphql_url, json=payload)
        except httpx.TimeoutException as e:
            logger.error("Shopify API timeout", extra={
                "shop_domain": self.shop_domain,
                "error": str(e)
            })
            raise ShopifyAPIError(f"Request timeout: {e}")
        except httpx.RequestError as e:
            logger.error("Shopify API request error", extra={
                "shop_domain": self.shop_domain,
                "error": str(e)
            })
            raise ShopifyAPIError(f"Request error: {e}")

        if response.status_code == 401:
            logger.error("Shopify API authentication failed", extra={
                "shop_domain": self.shop_domain,
                "status_code": response.status_code
            })
            raise ShopifyAPIError(
                "Authentication failed - access token may be invalid or expired",
                status_code=401
            )

        if response.status_code == 429:
            logger.warning("Shopify API rate limited", extra={
                "shop_domain": self.shop_domain
            })
            raise ShopifyAPIError(
                "Rate limited - please retry after a delay",
                status_code=429
            )

        if response.status_code >= 400:
            logger.error("Shopify API error", extra={
                "shop_domain": self.shop_domain,
                "status_code": response.status_code,
                "response_text": response.text[:500]
            })
            raise ShopifyAPIError(
                f"Shopify API error: {response.status_code}",
                status_code=response.status_code
            )

        result = response.json()

        if result.get("errors"):
            logger.error("GraphQL errors", extra={
                "shop_domain": self.shop_domain,
                "errors": result["errors"]
            })
            raise ShopifyAPIError(
                f"GraphQL errors: {result['errors']}",
                response=result
            )

        return result.get("data") or {}

    async def get_shop_info(self) -> ShopInfo:
        """Fetch the store's display name and contact email."""
        query = """
        query {
            shop {
                name
                email
            }
        }
        """
        data = await self._execute_graphql(query)
        shop = data.get("shop") or {}
        return ShopInfo(name=shop.get("name"), email=shop.get("email"))

    async def list_orders(self, first: int = 10) -> list[ShopifyOrder]:
        """
        Get the most recent orders, newest first.

        Args:
            first: Maximum number of orders to return (1-250)
        """
        query = """
        query recentOrders($first: Int!) {
            orders(first: $first, sortKey: CREATED_AT, reverse: true) {
                edges {
                    node {
                        id
                        name
                        createdAt
                        totalPriceSet {
                            shopMoney {
                                amount
                                currencyCode
                            }
                        }
                    }
                }
            }
        }
        """
        first = max(1, min(first, 250))
        data = await self._execute_graphql(query, {"first": first})
        edges = (data.get("orders") or {}).get("edges", [])

        orders = []
        for edge in edges:
            node = edge.get("node") or {}
            money = (node.get("totalPriceSet") or {}).get("shopMoney") or {}
            orders.append(ShopifyOrder(
                id=node["id"],
                name=node.get("name", ""),
                total_price=money.get("amount"),
                currency_code=money.get("currencyCode"),
                created_at=_parse_datetime(node.get("createdAt")),
            ))
        return orders

    async def create_subscription(
        self,
        name: str,
        price_amount: float,
        return_url: str,
        currency_code: str = "USD",
        interval: BillingInterval = BillingInterval.EVERY_30_DAYS,
        test: bool = False
    ) -> CreateSubscriptionResult:
        """
        Create a new recurring app subscription with a single line item.

        This creates a charge that the merchant must approve in Shopify admin.
        After approval, Shopify redirects the merchant to return_url with a
        charge_id query parameter.

        Args:
            name: Subscription name (displayed to merchant)
            price_amount: Price in currency units (e.g., 9.00)
            return_url: URL to redirect merchant after approval/decline
            currency_code: ISO 4217 currency code (default: USD)
            interval: Billing interval (EVERY_30_DAYS or ANNUAL)
            test: Whether this is a test charge (won't charge real money)

        Returns:
            CreateSubscriptionResult with confirmation_url for merchant redirect,
            or the userErrors Shopify reported.

        Raises:
            ShopifyAPIError: If the API call fails
        """
        mutation = """
        mutation CreateSubscription($name: String!, $lineItems: [AppSubscriptionLineItemInput!]!, $returnUrl: URL!, $test: Boolean) {
            appSubscriptionCreate(
                name: $name
                returnUrl: $returnUrl
                lineItems: $lineItems
                test: $test
            ) {
                appSubscription {
                    %s
                }
                confirmationUrl
                userErrors {
                    field
                    message
                }
            }
        }
        """ % SUBSCRIPTION_FIELDS

        variables = {
            "name": name,
            "returnUrl": return_url,
            "test": test,
            "lineItems": [
                {
                    "plan": {
                        "appRecurringPricingDetails": {
                            "price": {
                                "amount": price_amount,
                                "currencyCode": currency_code
                            },
                            "interval": interval.value
                        }
                    }
                }
            ]
        }

        logger.info("Creating Shopify subscription", extra={
            "shop_domain": self.shop_domain,
            "name": name,
            "price_amount": price_amount,
            "interval": interval.value,
            "test": test
        })

        data = await self._execute_graphql(mutation, variables)
        result = data.get("appSubscriptionCreate") or {}

        user_errors = result.get("userErrors") or []
        if user_errors:
            logger.warning("Subscription creation had user errors", extra={
                "shop_domain": self.shop_domain,
                "user_errors": user_errors
            })

        app_subscription = None
        if result.get("appSubscription"):
            app_subscription = ShopifySubscription.from_graphql(result["appSubscription"])

        return CreateSubscriptionResult(
            confirmation_url=result.get("confirmationUrl"),
            app_subscription=app_subscription,
            user_errors=user_errors
        )

    async def get_active_subscriptions(self) -> list[ShopifySubscription]:
        """
        Get the current app installation's active subscriptions.

        Returns:
            List of ShopifySubscription objects as reported by Shopify right now
        """
        query = """
        query getActiveSubscriptions {
            currentAppInstallation {
                activeSubscriptions {
                    %s
                }
            }
        }
        """ % SUBSCRIPTION_FIELDS

        data = await self._execute_graphql(query)
        installation = data.get("currentAppInstallation") or {}
        subscriptions_data = installation.get("activeSubscriptions") or []

        return [ShopifySubscription.from_graphql(sub) for sub in subscriptions_data]


def get_admin_client(shop_domain: str, access_token: str) -> ShopifyAdminClient:
    """
    Factory function to create a ShopifyAdminClient.

    Args:
        shop_domain: Shopify store domain
        access_token: Admin API access token

    Returns:
        Configured ShopifyAdminClient instance
    """
    return ShopifyAdminClient(shop_domain, access_token)
