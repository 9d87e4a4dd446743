"""
NCF Manager API response models.

Dataclasses for structured response handling.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any

FREE_PLAN = "free"
PRO_PLAN = "pro"

# Billing source NCF Manager reports for entitlements bought through this app
SHOPIFY_BILLING_SOURCE = "shopify"

# Conservative entitlement used whenever NCF Manager cannot be consulted
DEFAULT_MONTHLY_LIMIT = 10

# Allowance NCF Manager grants a pro plan; also used when it reports no limit
UNLIMITED_MONTHLY_LIMIT = 999999


def usage_percent(used: int, limit: int) -> int:
    """Percentage of the monthly allowance consumed; 0 when there is no allowance."""
    if limit <= 0:
        return 0
    return round(100 * used / limit)


@dataclass(frozen=True)
class PlanSnapshot:
    """
    Effective plan for a shop as reported by NCF Manager.

    Fetched per request and never persisted.
    """
    plan: str
    monthly_limit: int
    invoices_this_month: int
    billing_source: Optional[str] = None
    can_upgrade_here: bool = True
    message: Optional[str] = None

    @classmethod
    def default(cls) -> "PlanSnapshot":
        return cls(
            plan=FREE_PLAN,
            monthly_limit=DEFAULT_MONTHLY_LIMIT,
            invoices_this_month=0,
            billing_source=None,
            can_upgrade_here=True,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanSnapshot":
        """
        Build a snapshot from the `GET /api/shop/plan` body.

        Raises:
            KeyError, TypeError, ValueError: If required fields are missing or malformed
        """
        plan = str(data["plan"]).lower()
        billing_source = data.get("billingSource")

        can_upgrade_here = data.get("canUpgradeHere")
        if can_upgrade_here is None:
            can_upgrade_here = True
        # A pro plan paid through another channel must not be sold again here
        if plan == PRO_PLAN and billing_source not in (None, SHOPIFY_BILLING_SOURCE):
            can_upgrade_here = False

        monthly_limit = data["monthlyLimit"]
        if monthly_limit is None:
            monthly_limit = UNLIMITED_MONTHLY_LIMIT if plan == PRO_PLAN else DEFAULT_MONTHLY_LIMIT

        return cls(
            plan=plan,
            monthly_limit=int(monthly_limit),
            invoices_this_month=int(data.get("invoicesThisMonth") or 0),
            billing_source=billing_source,
            can_upgrade_here=bool(can_upgrade_here),
            message=data.get("message"),
        )

    @property
    def usage_percent(self) -> int:
        return usage_percent(self.invoices_this_month, self.monthly_limit)

    @property
    def entitled_elsewhere(self) -> bool:
        """True when another channel owns the entitlement and upgrading here would double bill."""
        return self.billing_source is not None and not self.can_upgrade_here

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan": self.plan,
            "monthly_limit": self.monthly_limit,
            "invoices_this_month": self.invoices_this_month,
            "billing_source": self.billing_source,
            "can_upgrade_here": self.can_upgrade_here,
            "message": self.message,
            "usage_percent": self.usage_percent,
        }
