"""
Effective plan resolution.

NCF Manager is the single source of truth for a shop's plan: a merchant can
pay through this Shopify app, a web checkout or a mobile storefront, and only
NCF Manager sees all of them. Its answer always overrides the plan cached on
the local shop record.

When NCF Manager cannot be reached, the shop gets a conservative free-tier
snapshot so that the app keeps working.
"""

import logging
from typing import Callable

from ncf_connector.integrations.ncf_manager.client import NcfManagerClient, get_ncf_manager_client
from ncf_connector.integrations.ncf_manager.exceptions import NcfManagerError
from ncf_connector.integrations.ncf_manager.models import PlanSnapshot, usage_percent

logger = logging.getLogger(__name__)

__all__ = ["PlanReconciler", "PlanSnapshot", "usage_percent"]


class PlanReconciler:
    """Resolves the effective plan for a shop, degrading to the free tier on failure."""

    def __init__(self, client_factory: Callable[[], NcfManagerClient] = get_ncf_manager_client):
        self._client_factory = client_factory

    async def get_effective_plan(self, shop_domain: str) -> PlanSnapshot:
        """
        Get the shop's plan from NCF Manager.

        Never raises: any failure yields PlanSnapshot.default().
        """
        try:
            async with self._client_factory() as client:
                snapshot = await client.get_shop_plan(shop_domain)
        except NcfManagerError as e:
            logger.warning("NCF Manager plan lookup failed, using default plan", extra={
                "shop_domain": shop_domain,
                "error": str(e),
                "status_code": e.status_code
            })
            return PlanSnapshot.default()
        except Exception as e:
            logger.error("Unexpected error resolving plan, using default plan", extra={
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return PlanSnapshot.default()

        logger.info("Effective plan resolved", extra={
            "shop_domain": shop_domain,
            "plan": snapshot.plan,
            "billing_source": snapshot.billing_source,
            "can_upgrade_here": snapshot.can_upgrade_here
        })
        return snapshot
