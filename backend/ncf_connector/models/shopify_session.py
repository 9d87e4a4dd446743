"""
ShopifySession model for stored Shopify access sessions.

Offline sessions carry the shop's Admin API access token. They are written by
the OAuth install flow and read by the authenticated session provider.

SECURITY: access_token must never be logged.
"""

from sqlalchemy import Column, String, Text, Boolean, DateTime, Index

from ncf_connector.models.base import Base, TimestampMixin


class ShopifySession(Base, TimestampMixin):
    """Access session for a shop, keyed by session id."""

    __tablename__ = "shopify_sessions"

    id = Column(
        String(255),
        primary_key=True,
        comment="Session id (offline_<shop> for offline sessions)"
    )
    shop = Column(
        String(255),
        nullable=False,
        comment="Shopify store domain"
    )
    access_token = Column(
        Text,
        nullable=True,
        comment="Shopify Admin API access token"
    )
    scope = Column(
        Text,
        nullable=True,
        comment="Comma separated granted OAuth scopes"
    )
    is_online = Column(
        Boolean,
        nullable=False,
        default=False
    )
    expires_at = Column(
        DateTime(timezone=True),
        nullable=True
    )

    __table_args__ = (
        Index("ix_shopify_sessions_shop", "shop"),
    )

    def __repr__(self) -> str:
        return f"<ShopifySession(id={self.id}, shop={self.shop}, is_online={self.is_online})>"

    @staticmethod
    def offline_id(shop_domain: str) -> str:
        return f"offline_{shop_domain}"
