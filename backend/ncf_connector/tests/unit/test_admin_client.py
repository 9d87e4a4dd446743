"""Tests for ShopifyAdminClient."""

import pytest
from unittest.mock import MagicMock, patch

import httpx

from ncf_connector.integrations.shopify.admin_client import (
    ShopifyAdminClient,
    ShopifyAPIError,
    BillingInterval,
    SHOPIFY_API_VERSION,
)


def _response(payload, status_code=200):
    return MagicMock(status_code=status_code, json=lambda: payload, text=str(payload))


class TestShopifyAdminClient:

    def test_requires_credentials(self):
        with pytest.raises(ValueError):
            ShopifyAdminClient("", "token")
        with pytest.raises(ValueError):
            ShopifyAdminClient("test-store.myshopify.com", "")

    def test_graphql_url(self, test_shop_domain):
        client = ShopifyAdminClient(f"https://{test_shop_domain}/", "mock-token")
        assert client.shop_domain == test_shop_domain
        assert client.graphql_url == (
            f"https://{test_shop_domain}/admin/api/{SHOPIFY_API_VERSION}/graphql.json"
        )

    @pytest.mark.asyncio
    async def test_get_shop_info(self, test_shop_domain):
        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.return_value = _response(
                {"data": {"shop": {"name": "Test Store", "email": "owner@example.com"}}}
            )

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                info = await client.get_shop_info()

        assert info.name == "Test Store"
        assert info.email == "owner@example.com"

    @pytest.mark.asyncio
    async def test_list_orders(self, test_shop_domain):
        payload = {
            "data": {
                "orders": {
                    "edges": [
                        {
                            "node": {
                                "id": "gid://shopify/Order/1",
                                "name": "#1001",
                                "createdAt": "2024-05-01T12:00:00Z",
                                "totalPriceSet": {
                                    "shopMoney": {"amount": "150.00", "currencyCode": "DOP"}
                                },
                            }
                        }
                    ]
                }
            }
        }

        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.return_value = _response(payload)

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                orders = await client.list_orders(first=500)

            sent = mock_post.call_args.kwargs["json"]

        assert sent["variables"] == {"first": 250}
        assert len(orders) == 1
        assert orders[0].name == "#1001"
        assert orders[0].total_price == "150.00"
        assert orders[0].currency_code == "DOP"
        assert orders[0].created_at.year == 2024

    @pytest.mark.asyncio
    async def test_create_subscription_success(self, test_shop_domain):
        payload = {
            "data": {
                "appSubscriptionCreate": {
                    "appSubscription": {
                        "id": "gid://shopify/AppSubscription/12345",
                        "name": "NCF Manager Pro",
                        "status": "PENDING",
                        "createdAt": "2024-01-15T10:00:00Z",
                        "currentPeriodEnd": None,
                        "test": True,
                    },
                    "confirmationUrl": "https://test-store.myshopify.com/admin/charges/confirm",
                    "userErrors": [],
                }
            }
        }

        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.return_value = _response(payload)

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                result = await client.create_subscription(
                    name="NCF Manager Pro",
                    price_amount=9.0,
                    return_url="https://connector.test/app/billing/callback",
                    interval=BillingInterval.EVERY_30_DAYS,
                    test=True,
                )

            variables = mock_post.call_args.kwargs["json"]["variables"]

        assert result.success
        assert result.app_subscription.id == "gid://shopify/AppSubscription/12345"
        line_item = variables["lineItems"][0]["plan"]["appRecurringPricingDetails"]
        assert line_item["price"] == {"amount": 9.0, "currencyCode": "USD"}
        assert line_item["interval"] == "EVERY_30_DAYS"
        assert variables["test"] is True

    @pytest.mark.asyncio
    async def test_create_subscription_with_user_errors(self, test_shop_domain):
        payload = {
            "data": {
                "appSubscriptionCreate": {
                    "appSubscription": None,
                    "confirmationUrl": None,
                    "userErrors": [{"field": ["price"], "message": "Price must be positive"}],
                }
            }
        }

        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.return_value = _response(payload)

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                result = await client.create_subscription(
                    name="Test", price_amount=-1, return_url="https://example.com"
                )

        assert not result.success
        assert result.user_errors == [{"field": ["price"], "message": "Price must be positive"}]

    @pytest.mark.asyncio
    async def test_get_active_subscriptions(self, test_shop_domain):
        payload = {
            "data": {
                "currentAppInstallation": {
                    "activeSubscriptions": [
                        {
                            "id": "gid://shopify/AppSubscription/12345",
                            "name": "NCF Manager Pro",
                            "status": "ACTIVE",
                            "createdAt": "2024-01-01T00:00:00Z",
                            "currentPeriodEnd": "2024-02-01T00:00:00Z",
                            "test": False,
                        }
                    ]
                }
            }
        }

        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.return_value = _response(payload)

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                subscriptions = await client.get_active_subscriptions()

        assert len(subscriptions) == 1
        assert subscriptions[0].is_active
        assert subscriptions[0].current_period_end is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [401, 429, 500])
    async def test_error_status_raises(self, test_shop_domain, status_code):
        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.return_value = _response({}, status_code=status_code)

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                with pytest.raises(ShopifyAPIError) as exc_info:
                    await client.get_active_subscriptions()

        assert exc_info.value.status_code == status_code

    @pytest.mark.asyncio
    async def test_graphql_errors_raise(self, test_shop_domain):
        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.return_value = _response({"errors": [{"message": "Access denied"}]})

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                with pytest.raises(ShopifyAPIError):
                    await client.get_shop_info()

    @pytest.mark.asyncio
    async def test_timeout_raises(self, test_shop_domain):
        with patch("httpx.AsyncClient.post") as mock_post:
            mock_post.side_effect = httpx.ReadTimeout("timed out")

            async with ShopifyAdminClient(test_shop_domain, "mock-token") as client:
                with pytest.raises(ShopifyAPIError):
                    await client.get_active_subscriptions()
