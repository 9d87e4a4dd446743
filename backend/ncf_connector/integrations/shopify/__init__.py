"""
Shopify integration module.
"""

from ncf_connector.integrations.shopify.admin_client import (
    ShopifyAdminClient,
    ShopifyAPIError,
    ShopifySubscription,
    ShopifyOrder,
    ShopInfo,
    CreateSubscriptionResult,
    BillingInterval,
    get_admin_client,
)

__all__ = [
    "ShopifyAdminClient",
    "ShopifyAPIError",
    "ShopifySubscription",
    "ShopifyOrder",
    "ShopInfo",
    "CreateSubscriptionResult",
    "BillingInterval",
    "get_admin_client",
]
