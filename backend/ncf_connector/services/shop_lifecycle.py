"""
Shop lifecycle management.

Owns the install / uninstall / redact transitions of the `shops` table.

Shopify delivers lifecycle webhooks at least once and in no guaranteed
order, so every transition is a single keyed statement on terminal fields
(booleans, timestamps) that the database applies atomically:
- install: INSERT ... ON CONFLICT (shop_domain) DO UPDATE
- first billing contact: INSERT ... ON CONFLICT (shop_domain) DO NOTHING
- uninstall: UPDATE ... WHERE shop_domain = :domain
- redact: DELETE ... WHERE shop_domain = :domain

Repeating any of them converges to the same row, so no locking is needed.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update, delete, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ncf_connector.integrations.shopify.admin_client import ShopInfo
from ncf_connector.models.base import generate_uuid
from ncf_connector.models.shop import Shop, ChargeStatus, FREE_PLAN
from ncf_connector.models.shopify_session import ShopifySession
from ncf_connector.integrations.ncf_manager.models import DEFAULT_MONTHLY_LIMIT

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ShopLifecycleService:
    """
    Create, reactivate, deactivate and purge shop records.

    Methods commit their own transaction.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            logger.warning("No native upsert for dialect, using SQLite ON CONFLICT syntax", extra={
                "dialect": dialect
            })
            insert = sqlite.insert
        return insert

    def get_shop(self, shop_domain: str) -> Optional[Shop]:
        """Get the shop record, or None if it does not exist."""
        return self.db.query(Shop).filter(Shop.shop_domain == shop_domain).first()

    def upsert_on_install(self, shop_domain: str, info: Optional[ShopInfo] = None) -> Shop:
        """
        Create the shop record or reactivate an existing one.

        An existing record always ends up active with uninstalled_at cleared,
        whatever its previous state, and gets fresh name/email. Billing fields
        are left alone.

        Args:
            shop_domain: Shopify store domain
            info: Name and email from the Shopify `shop` query

        Returns:
            The shop record after the upsert
        """
        if not shop_domain:
            raise ValueError("shop_domain is required")

        info = info or ShopInfo()
        shop_name = info.name or shop_domain
        now = datetime.now(timezone.utc)

        insert = self._insert()
        stmt = insert(Shop).values(
            id=generate_uuid(),
            shop_domain=shop_domain,
            shop_name=shop_name,
            email=info.email,
            is_active=True,
            installed_at=now,
            uninstalled_at=None,
            shopify_charge_status=ChargeStatus.NONE,
            plan=FREE_PLAN,
            monthly_limit=DEFAULT_MONTHLY_LIMIT,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Shop.shop_domain],
            set_={
                "shop_name": stmt.excluded.shop_name,
                "email": stmt.excluded.email,
                "is_active": True,
                "uninstalled_at": None,
                "updated_at": func.now(),
            },
        )

        try:
            self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info("Shop connected", extra={
            "shop_domain": shop_domain,
            "shop_name": shop_name
        })

        return self.get_shop(shop_domain)

    def ensure_shop(self, shop_domain: str) -> Shop:
        """
        Insert a default active record for the shop if none exists.

        Unlike upsert_on_install this never touches an existing row, so it is
        safe to call before billing writes.
        """
        if not shop_domain:
            raise ValueError("shop_domain is required")

        insert = self._insert()
        stmt = insert(Shop).values(
            id=generate_uuid(),
            shop_domain=shop_domain,
            shop_name=shop_domain,
            is_active=True,
            installed_at=datetime.now(timezone.utc),
            shopify_charge_status=ChargeStatus.NONE,
            plan=FREE_PLAN,
            monthly_limit=DEFAULT_MONTHLY_LIMIT,
        ).on_conflict_do_nothing(index_elements=[Shop.shop_domain])

        try:
            result = self.db.execute(stmt)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        if result.rowcount:
            logger.info("Shop record created on first contact", extra={"shop_domain": shop_domain})

        return self.get_shop(shop_domain)

    def deactivate_on_uninstall(self, shop_domain: str) -> bool:
        """
        Mark the shop inactive and drop its stored sessions.

        Uninstall can arrive before the install ever completed, so a missing
        record is logged and ignored. Persistence errors are treated the same way.

        Returns:
            True if a shop record was deactivated
        """
        now = datetime.now(timezone.utc)

        try:
            result = self.db.execute(
                update(Shop)
                .where(Shop.shop_domain == shop_domain)
                .values(is_active=False, uninstalled_at=now)
                .execution_options(synchronize_session=False)
            )
            sessions = self.db.execute(
                delete(ShopifySession)
                .where(ShopifySession.shop == shop_domain)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Could not deactivate shop, treating as absent", extra={
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return False

        logger.info("Sessions deleted for shop", extra={
            "shop_domain": shop_domain,
            "sessions_deleted": sessions.rowcount
        })

        if not result.rowcount:
            logger.info("No shop found to deactivate", extra={"shop_domain": shop_domain})
            return False

        logger.info("Shop marked inactive", extra={"shop_domain": shop_domain})
        return True

    def purge_on_redact(self, shop_domain: str) -> bool:
        """
        Delete the shop record and any sessions left for it.

        Irreversible. Succeeds whether or not anything was stored; persistence
        errors are logged and treated as "already absent".

        Returns:
            True if a shop record was deleted
        """
        try:
            result = self.db.execute(
                delete(Shop)
                .where(Shop.shop_domain == shop_domain)
                .execution_options(synchronize_session=False)
            )
            self.db.execute(
                delete(ShopifySession)
                .where(ShopifySession.shop == shop_domain)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Could not purge shop data, treating as absent", extra={
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return False

        if not result.rowcount:
            logger.info("No shop data found to purge", extra={"shop_domain": shop_domain})
            return False

        logger.info("Shop data purged", extra={"shop_domain": shop_domain})
        return True
