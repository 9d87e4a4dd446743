"""
Shop model: one row per installed Shopify store.

CRITICAL DESIGN DECISIONS:
- shop_domain is the canonical Shopify identifier (mystore.myshopify.com)
  and the only lookup key; it is unique.
- shopify_charge_id / shopify_charge_status mirror the Shopify AppSubscription
  created through this app. They never hold entitlement decisions.
- plan / monthly_limit are a local cache. NCF Manager is the source of truth
  for the effective plan (see services.plan_reconciler).
"""

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Enum, UniqueConstraint
)

from ncf_connector.models.base import Base, TimestampMixin, generate_uuid
from ncf_connector.integrations.ncf_manager.models import UNLIMITED_MONTHLY_LIMIT  # noqa: F401


class ChargeStatus:
    """Shopify charge status values mirrored on the shop record."""
    NONE = "none"                # No subscription requested yet
    PENDING = "pending"          # Charge created, awaiting merchant approval
    ACTIVE = "active"            # Merchant approved, subscription active
    DECLINED = "declined"        # Callback found no active subscription
    CANCELLED = "cancelled"      # Merchant backed out of the confirmation page


CHARGE_STATUSES = (
    ChargeStatus.NONE,
    ChargeStatus.PENDING,
    ChargeStatus.ACTIVE,
    ChargeStatus.DECLINED,
    ChargeStatus.CANCELLED,
)

# Local cache values written after a confirmed Shopify subscription
PRO_PLAN = "pro"
FREE_PLAN = "free"


class Shop(Base, TimestampMixin):
    """
    Local tenant record for a Shopify store.

    Rows are created on first authenticated load, soft-deleted on
    app/uninstalled and hard-deleted on shop/redact.
    """

    __tablename__ = "shops"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )

    shop_domain = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Shopify store domain (mystore.myshopify.com)"
    )

    # Store metadata from Shopify
    shop_name = Column(
        String(255),
        nullable=True,
        comment="Store display name"
    )
    email = Column(
        String(255),
        nullable=True,
        comment="Store contact email"
    )

    # Installation status
    is_active = Column(
        Boolean,
        nullable=False,
        default=True,
        comment="False after app/uninstalled until the next install"
    )
    installed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the app was first installed"
    )
    uninstalled_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the app was uninstalled; cleared on reinstall"
    )

    # Shopify Billing mirror
    shopify_charge_id = Column(
        String(100),
        nullable=True,
        comment="Shopify AppSubscription GID"
    )
    shopify_charge_status = Column(
        Enum(*CHARGE_STATUSES, name="shop_charge_status"),
        nullable=False,
        default=ChargeStatus.NONE,
        server_default=ChargeStatus.NONE,
        comment="Mirror of the Shopify subscription created by this app"
    )

    # Legacy plan cache, never authoritative
    plan = Column(
        String(50),
        nullable=False,
        default=FREE_PLAN,
        server_default=FREE_PLAN,
        comment="Cached plan tier; NCF Manager is authoritative"
    )
    monthly_limit = Column(
        Integer,
        nullable=False,
        default=10,
        server_default="10",
        comment="Cached monthly invoice allowance"
    )

    __table_args__ = (
        UniqueConstraint("shop_domain", name="uq_shops_shop_domain"),
    )

    def __repr__(self) -> str:
        return f"<Shop(id={self.id}, shop_domain={self.shop_domain}, is_active={self.is_active})>"
