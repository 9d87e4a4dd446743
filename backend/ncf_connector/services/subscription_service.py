"""
Subscription orchestration for Shopify Billing.

Orchestrates:
- Creating the recurring Pro subscription and the confirmation redirect
- Confirming it when Shopify sends the merchant back
- Mirroring the result on the shop record
- Telling NCF Manager about the upgrade

The confirmation decision is always derived from Shopify's live list of
active subscriptions, never from the pending status stored at creation.
Duplicate callbacks and page refreshes therefore converge to the same
result without a read-modify-write race.

NCF Manager stays authoritative for entitlements. The charge fields written
here only mirror Shopify; they are never overwritten from NCF Manager.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ncf_connector.config.settings import get_settings
from ncf_connector.integrations.ncf_manager.client import NcfManagerClient, get_ncf_manager_client
from ncf_connector.integrations.ncf_manager.exceptions import NcfManagerError
from ncf_connector.integrations.shopify.admin_client import (
    ShopifyAdminClient,
    ShopifyAPIError,
    ShopifySubscription,
    BillingInterval,
)
from ncf_connector.models.shop import (
    Shop,
    ChargeStatus,
    PRO_PLAN,
    UNLIMITED_MONTHLY_LIMIT,
)
from ncf_connector.services.plan_reconciler import PlanReconciler
from ncf_connector.services.shop_lifecycle import ShopLifecycleService

logger = logging.getLogger(__name__)

BILLING_ACTION_UPGRADE = "upgrade"

ENTITLED_ELSEWHERE_MESSAGE = (
    "This shop already has an active plan purchased through another channel"
)
NO_CONFIRMATION_URL_MESSAGE = "Could not create the subscription"


@dataclass
class SubscriptionCreateResult:
    """Outcome of create_subscription: a redirect target or a list of errors."""
    confirmation_url: Optional[str] = None
    charge_id: Optional[str] = None
    errors: list = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.confirmation_url) and not self.errors


@dataclass
class ConfirmationOutcome:
    """Charge state written by confirm_subscription."""
    status: str
    charge_id: Optional[str] = None
    plan: Optional[str] = None


@dataclass
class BillingStatus:
    """Current Shopify subscription state for the billing page."""
    has_active_subscription: bool
    subscription: Optional[ShopifySubscription] = None


class SubscriptionOrchestrator:
    """
    Creates and confirms the Pro subscription for one shop session.

    The admin client comes from the authenticated session of the request. A
    shop with no local record yet gets a default one before the first write.
    """

    def __init__(
        self,
        db_session: Session,
        admin_client: ShopifyAdminClient,
        plan_reconciler: Optional[PlanReconciler] = None,
        ncf_client_factory: Callable[[], NcfManagerClient] = get_ncf_manager_client,
        lifecycle: Optional[ShopLifecycleService] = None,
    ):
        self.db = db_session
        self.lifecycle = lifecycle or ShopLifecycleService(db_session)
        self.admin = admin_client
        self.plan_reconciler = plan_reconciler or PlanReconciler(ncf_client_factory)
        self._ncf_client_factory = ncf_client_factory
        self.settings = get_settings()

    def _update_shop(self, shop_domain: str, **values) -> None:
        """Apply a keyed single-row update, creating the record first if needed."""
        self.lifecycle.ensure_shop(shop_domain)
        self.db.execute(
            update(Shop)
            .where(Shop.shop_domain == shop_domain)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def _mark_active(self, shop_domain: str, subscription: ShopifySubscription) -> None:
        self._update_shop(
            shop_domain,
            plan=PRO_PLAN,
            monthly_limit=UNLIMITED_MONTHLY_LIMIT,
            shopify_charge_id=subscription.id,
            shopify_charge_status=ChargeStatus.ACTIVE,
        )

    async def create_subscription(self, shop_domain: str) -> SubscriptionCreateResult:
        """
        Create the recurring Pro subscription in Shopify.

        On success the shop is marked pending with the new subscription id and
        the caller redirects to the confirmation URL. Shopify userErrors are
        returned unchanged and nothing is written.
        """
        snapshot = await self.plan_reconciler.get_effective_plan(shop_domain)
        if snapshot.entitled_elsewhere:
            logger.info("Subscription creation suppressed, shop entitled through another channel", extra={
                "shop_domain": shop_domain,
                "plan": snapshot.plan,
                "billing_source": snapshot.billing_source
            })
            return SubscriptionCreateResult(errors=[
                {"field": None, "message": snapshot.message or ENTITLED_ELSEWHERE_MESSAGE}
            ])

        try:
            result = await self.admin.create_subscription(
                name=self.settings.pro_plan_name,
                price_amount=self.settings.pro_plan_price,
                currency_code=self.settings.pro_plan_currency,
                interval=BillingInterval.EVERY_30_DAYS,
                return_url=self.settings.billing_return_url,
                test=self.settings.billing_test_mode,
            )
        except ShopifyAPIError as e:
            logger.error("Shopify API error during subscription creation", extra={
                "shop_domain": shop_domain,
                "error": str(e),
                "status_code": e.status_code
            })
            return SubscriptionCreateResult(errors=[{"field": None, "message": str(e)}])

        if result.user_errors:
            logger.error("Billing errors", extra={
                "shop_domain": shop_domain,
                "errors": result.user_errors
            })
            return SubscriptionCreateResult(errors=result.user_errors)

        if not result.confirmation_url:
            return SubscriptionCreateResult(errors=[
                {"field": None, "message": NO_CONFIRMATION_URL_MESSAGE}
            ])

        charge_id = result.app_subscription.id if result.app_subscription else None
        self._update_shop(
            shop_domain,
            shopify_charge_id=charge_id,
            shopify_charge_status=ChargeStatus.PENDING,
        )

        logger.info("Subscription created, awaiting merchant approval", extra={
            "shop_domain": shop_domain,
            "charge_id": charge_id
        })

        return SubscriptionCreateResult(
            confirmation_url=result.confirmation_url,
            charge_id=charge_id,
        )

    async def confirm_subscription(
        self,
        shop_domain: str,
        charge_id: Optional[str] = None
    ) -> ConfirmationOutcome:
        """
        Resolve the merchant's return from the Shopify confirmation page.

        - No charge_id: the merchant cancelled; status becomes cancelled.
        - charge_id present: ask Shopify for active subscriptions. An ACTIVE one
          upgrades the shop to Pro and notifies NCF Manager; none means declined.

        The plan cache is only touched on activation.

        Raises:
            ShopifyAPIError: If the active subscriptions cannot be read (nothing is written)
        """
        if not charge_id:
            self._update_shop(shop_domain, shopify_charge_status=ChargeStatus.CANCELLED)
            logger.info("Subscription cancelled by merchant", extra={"shop_domain": shop_domain})
            return ConfirmationOutcome(status=ChargeStatus.CANCELLED)

        subscriptions = await self.admin.get_active_subscriptions()
        active_subscription = next((sub for sub in subscriptions if sub.is_active), None)

        if not active_subscription:
            self._update_shop(shop_domain, shopify_charge_status=ChargeStatus.DECLINED)
            logger.info("No active subscription after confirmation, marked declined", extra={
                "shop_domain": shop_domain,
                "charge_id": charge_id
            })
            return ConfirmationOutcome(status=ChargeStatus.DECLINED, charge_id=charge_id)

        self._mark_active(shop_domain, active_subscription)
        await self._notify_upgrade(shop_domain, active_subscription.id)

        logger.info("Shop upgraded to Pro", extra={
            "shop_domain": shop_domain,
            "charge_id": active_subscription.id
        })

        return ConfirmationOutcome(
            status=ChargeStatus.ACTIVE,
            charge_id=active_subscription.id,
            plan=PRO_PLAN,
        )

    async def sync_active_subscription(self, shop_domain: str) -> BillingStatus:
        """
        Re-read Shopify's active subscriptions for the billing page.

        An ACTIVE subscription is mirrored on the shop record; nothing is
        written otherwise.

        Raises:
            ShopifyAPIError: If Shopify cannot be queried
        """
        subscriptions = await self.admin.get_active_subscriptions()
        active_subscription = next((sub for sub in subscriptions if sub.is_active), None)

        if active_subscription:
            self._mark_active(shop_domain, active_subscription)

        return BillingStatus(
            has_active_subscription=active_subscription is not None,
            subscription=active_subscription,
        )

    async def _notify_upgrade(self, shop_domain: str, charge_id: str) -> None:
        """Best-effort billing notification; failures are logged, never raised."""
        try:
            async with self._ncf_client_factory() as client:
                await client.notify_billing(
                    shop_domain,
                    action=BILLING_ACTION_UPGRADE,
                    plan=PRO_PLAN,
                    charge_id=charge_id,
                )
        except NcfManagerError as e:
            logger.error("Error syncing billing with NCF Manager", extra={
                "shop_domain": shop_domain,
                "charge_id": charge_id,
                "error": str(e)
            })
        except Exception as e:
            logger.error("Unexpected error syncing billing with NCF Manager", extra={
                "shop_domain": shop_domain,
                "charge_id": charge_id,
                "error": str(e)
            })
