"""
Tests for effective plan resolution.

Tests cover:
- PlanSnapshot parsing of the NCF Manager plan body
- Usage percentage
- Fallback to the free tier when NCF Manager fails
"""

import pytest

from ncf_connector.integrations.ncf_manager.exceptions import (
    NcfManagerTimeoutError,
    NcfManagerResponseError,
)
from ncf_connector.integrations.ncf_manager.models import DEFAULT_MONTHLY_LIMIT, UNLIMITED_MONTHLY_LIMIT
from ncf_connector.services.plan_reconciler import PlanReconciler, PlanSnapshot, usage_percent


class TestUsagePercent:

    def test_rounds_to_nearest_integer(self):
        assert usage_percent(8, 10) == 80
        assert usage_percent(1, 3) == 33
        assert usage_percent(2, 3) == 67

    def test_zero_limit_is_zero(self):
        assert usage_percent(5, 0) == 0
        assert usage_percent(0, 0) == 0

    def test_can_exceed_one_hundred(self):
        assert usage_percent(15, 10) == 150


class TestPlanSnapshot:

    def test_default_is_free_tier(self):
        snapshot = PlanSnapshot.default()

        assert snapshot.plan == "free"
        assert snapshot.monthly_limit == 10
        assert snapshot.invoices_this_month == 0
        assert snapshot.billing_source is None
        assert snapshot.can_upgrade_here is True
        assert snapshot.entitled_elsewhere is False

    def test_from_dict_reads_manager_fields(self):
        snapshot = PlanSnapshot.from_dict({
            "plan": "free",
            "monthlyLimit": 10,
            "invoicesThisMonth": 8,
            "billingSource": None,
            "canUpgradeHere": True,
        })

        assert snapshot.plan == "free"
        assert snapshot.monthly_limit == 10
        assert snapshot.invoices_this_month == 8
        assert snapshot.usage_percent == 80

    def test_missing_can_upgrade_defaults_true(self):
        snapshot = PlanSnapshot.from_dict({"plan": "free", "monthlyLimit": 10})
        assert snapshot.can_upgrade_here is True
        assert snapshot.invoices_this_month == 0

    def test_pro_from_other_channel_cannot_upgrade_here(self):
        snapshot = PlanSnapshot.from_dict({
            "plan": "pro",
            "monthlyLimit": 999999,
            "invoicesThisMonth": 42,
            "billingSource": "stripe",
            "canUpgradeHere": True,
            "message": "Plan managed from the web dashboard",
        })

        assert snapshot.can_upgrade_here is False
        assert snapshot.entitled_elsewhere is True
        assert snapshot.message == "Plan managed from the web dashboard"

    def test_pro_billed_through_shopify_without_upgrade_is_elsewhere(self):
        snapshot = PlanSnapshot.from_dict({
            "plan": "pro",
            "monthlyLimit": 999999,
            "billingSource": "shopify",
            "canUpgradeHere": False,
        })

        assert snapshot.can_upgrade_here is False
        assert snapshot.entitled_elsewhere is True

    def test_null_limit_on_pro_is_unlimited(self):
        snapshot = PlanSnapshot.from_dict({
            "plan": "pro",
            "monthlyLimit": None,
            "billingSource": "shopify",
            "canUpgradeHere": False,
        })

        assert snapshot.monthly_limit == UNLIMITED_MONTHLY_LIMIT
        assert snapshot.plan == "pro"

    def test_null_limit_on_free_is_default(self):
        snapshot = PlanSnapshot.from_dict({"plan": "free", "monthlyLimit": None})

        assert snapshot.monthly_limit == DEFAULT_MONTHLY_LIMIT
        assert snapshot.can_upgrade_here is True

    def test_missing_required_field_raises(self):
        with pytest.raises(KeyError):
            PlanSnapshot.from_dict({"plan": "free"})

    def test_to_dict_includes_usage(self):
        data = PlanSnapshot(plan="free", monthly_limit=10, invoices_this_month=5).to_dict()

        assert data["usage_percent"] == 50
        assert data["plan"] == "free"
        assert data["can_upgrade_here"] is True


class TestPlanReconciler:

    @pytest.mark.asyncio
    async def test_returns_manager_snapshot(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()
        expected = PlanSnapshot(plan="pro", monthly_limit=999999, invoices_this_month=3,
                                billing_source="shopify")
        client.get_shop_plan.return_value = expected

        snapshot = await PlanReconciler(factory).get_effective_plan(test_shop_domain)

        assert snapshot == expected
        client.get_shop_plan.assert_awaited_once_with(test_shop_domain)

    @pytest.mark.asyncio
    async def test_timeout_falls_back_to_default(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()
        client.get_shop_plan.side_effect = NcfManagerTimeoutError("timed out")

        snapshot = await PlanReconciler(factory).get_effective_plan(test_shop_domain)

        assert snapshot == PlanSnapshot.default()

    @pytest.mark.asyncio
    async def test_error_status_falls_back_to_default(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()
        client.get_shop_plan.side_effect = NcfManagerResponseError("boom", status_code=500)

        snapshot = await PlanReconciler(factory).get_effective_plan(test_shop_domain)

        assert snapshot.plan == "free"
        assert snapshot.can_upgrade_here is True

    @pytest.mark.asyncio
    async def test_unexpected_error_falls_back_to_default(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()
        client.get_shop_plan.side_effect = RuntimeError("unexpected")

        snapshot = await PlanReconciler(factory).get_effective_plan(test_shop_domain)

        assert snapshot == PlanSnapshot.default()
