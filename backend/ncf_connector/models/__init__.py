"""
Database models for shops and their Shopify sessions.
"""

from ncf_connector.models.base import TimestampMixin
from ncf_connector.models.shop import (
    Shop,
    ChargeStatus,
    CHARGE_STATUSES,
    PRO_PLAN,
    FREE_PLAN,
    UNLIMITED_MONTHLY_LIMIT,
)
from ncf_connector.models.shopify_session import ShopifySession

__all__ = [
    "TimestampMixin",
    "Shop",
    "ChargeStatus",
    "CHARGE_STATUSES",
    "PRO_PLAN",
    "FREE_PLAN",
    "UNLIMITED_MONTHLY_LIMIT",
    "ShopifySession",
]
