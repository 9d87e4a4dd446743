"""
Integration tests for the Shopify webhook endpoints.

Tests cover:
- HMAC signature verification
- Lifecycle webhooks against a real database
- Acknowledgment of every verified delivery
"""

import json
import hmac
import hashlib
import base64
import pytest
from unittest.mock import patch

import httpx
from fastapi.testclient import TestClient

from main import app
from ncf_connector.api.dependencies import get_webhook_dispatcher
from ncf_connector.api.routes.webhooks_shopify import verify_shopify_webhook
from ncf_connector.models.shopify_session import ShopifySession
from ncf_connector.services.shop_lifecycle import ShopLifecycleService
from ncf_connector.services.webhook_dispatcher import WebhookDispatcher

TEST_API_SECRET = "test-api-secret"


def _sign(body: bytes, secret: str = TEST_API_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


@pytest.fixture
def ncf(make_ncf_client):
    return make_ncf_client()


@pytest.fixture
def lifecycle(db_session):
    return ShopLifecycleService(db_session)


@pytest.fixture
def client(lifecycle, ncf):
    _, factory = ncf
    app.dependency_overrides[get_webhook_dispatcher] = lambda: WebhookDispatcher(
        lifecycle, ncf_client_factory=factory
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


def _post(client, path, payload, shop_domain, topic=None, signature=None):
    body = json.dumps(payload).encode("utf-8")
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Shop-Domain": shop_domain,
        "X-Shopify-Hmac-Sha256": signature if signature is not None else _sign(body),
    }
    if topic:
        headers["X-Shopify-Topic"] = topic
    return client.post(f"/api/webhooks/shopify{path}", content=body, headers=headers)


class TestWebhookHMACVerification:
    """Tests for webhook HMAC signature verification."""

    def test_valid_hmac_verification(self):
        body = b'{"test": "data"}'
        assert verify_shopify_webhook(body, _sign(body, "test-secret-key"), "test-secret-key")

    def test_hmac_with_tampered_body(self):
        signature = _sign(b'{"test": "data"}', "test-secret-key")
        assert not verify_shopify_webhook(b'{"test": "tampered"}', signature, "test-secret-key")

    def test_hmac_empty_values(self):
        assert not verify_shopify_webhook(b"data", "", "secret")
        assert not verify_shopify_webhook(b"data", "signature", "")
        assert not verify_shopify_webhook(b"data", None, "secret")

    def test_invalid_signature_is_rejected(self, client, lifecycle, test_shop_domain):
        lifecycle.upsert_on_install(test_shop_domain)

        response = _post(client, "/app-uninstalled", {}, test_shop_domain, signature="forged")

        assert response.status_code == 401
        assert lifecycle.get_shop(test_shop_domain).is_active is True

    def test_missing_signature_is_rejected(self, client, test_shop_domain):
        response = client.post(
            "/api/webhooks/shopify/shop-redact",
            content=b"{}",
            headers={"X-Shopify-Shop-Domain": test_shop_domain},
        )
        assert response.status_code == 401


class TestLifecycleWebhooks:

    def test_app_uninstalled(self, client, lifecycle, db_session, test_shop_domain):
        lifecycle.upsert_on_install(test_shop_domain)
        db_session.add(ShopifySession(
            id=ShopifySession.offline_id(test_shop_domain),
            shop=test_shop_domain,
            access_token="shpat_test",
        ))
        db_session.commit()

        response = _post(client, "/app-uninstalled", {"id": 1}, test_shop_domain, "app/uninstalled")

        assert response.status_code == 200
        assert response.json() == {"received": True, "message": "Shop deactivated"}
        assert lifecycle.get_shop(test_shop_domain).is_active is False
        assert db_session.query(ShopifySession).count() == 0

    def test_duplicate_uninstall_is_acknowledged(self, client, lifecycle, test_shop_domain):
        lifecycle.upsert_on_install(test_shop_domain)

        first = _post(client, "/app-uninstalled", {}, test_shop_domain)
        second = _post(client, "/app-uninstalled", {}, test_shop_domain)

        assert first.status_code == 200
        assert second.status_code == 200
        assert lifecycle.get_shop(test_shop_domain).is_active is False

    def test_uninstall_for_unknown_shop_is_acknowledged(self, client):
        response = _post(client, "/app-uninstalled", {}, "never-installed.myshopify.com")

        assert response.status_code == 200
        assert response.json()["message"] == "No shop to deactivate"

    def test_shop_redact(self, client, lifecycle, test_shop_domain):
        lifecycle.upsert_on_install(test_shop_domain)

        response = _post(client, "/shop-redact", {"shop_domain": test_shop_domain}, test_shop_domain)

        assert response.status_code == 200
        assert lifecycle.get_shop(test_shop_domain) is None

    @pytest.mark.parametrize("path", ["/customers-data-request", "/customers-redact"])
    def test_customer_requests_acknowledged(self, client, path, test_shop_domain):
        payload = {"shop_domain": test_shop_domain, "customer": {"id": 1}}

        response = _post(client, path, payload, test_shop_domain)

        assert response.status_code == 200
        assert response.json()["message"] == "Customer request acknowledged"


class TestOrderWebhook:

    def test_order_is_relayed(self, client, ncf, test_shop_domain):
        ncf_client, _ = ncf
        order = {"id": 1, "name": "#1001", "total_price": "10.00"}

        response = _post(client, "/orders-create", order, test_shop_domain, "orders/create")

        assert response.status_code == 200
        ncf_client.forward_order.assert_awaited_once_with(test_shop_domain, "orders/create", order)

    def test_relay_failure_still_returns_200(self, client, ncf, test_shop_domain):
        ncf_client, _ = ncf
        ncf_client.forward_order.side_effect = RuntimeError("NCF Manager down")

        response = _post(client, "/orders-create", {"id": 1}, test_shop_domain)

        assert response.status_code == 200
        assert response.json()["received"] is True


class TestTopicRouting:

    def test_generic_endpoint_routes_by_header(self, client, lifecycle, test_shop_domain):
        lifecycle.upsert_on_install(test_shop_domain)

        response = _post(client, "", {}, test_shop_domain, topic="APP_UNINSTALLED")

        assert response.status_code == 200
        assert lifecycle.get_shop(test_shop_domain).is_active is False

    def test_unknown_topic_is_acknowledged(self, client, test_shop_domain):
        response = _post(client, "", {}, test_shop_domain, topic="products/update")

        assert response.status_code == 200
        assert response.json()["message"] == "Topic not handled"


class TestWithoutDatabase:
    """The real dispatcher dependency, with DATABASE_URL unset."""

    @pytest.fixture
    def bare_client(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setattr("ncf_connector.database.session._engine", None)
        monkeypatch.setattr("ncf_connector.database.session._SessionLocal", None)
        return TestClient(app)

    def test_order_is_still_relayed(self, bare_client, test_shop_domain):
        with patch("httpx.AsyncClient.request") as mock_request:
            mock_request.return_value = httpx.Response(200, json={"ok": True})

            response = _post(bare_client, "/orders-create", {"id": 1}, test_shop_domain, "orders/create")

        assert response.status_code == 200
        assert response.json()["message"] == "Order relayed"
        assert mock_request.call_args.kwargs["url"] == "https://ncf.test/api/webhooks/shopify/order"

    def test_uninstall_is_acknowledged(self, bare_client, test_shop_domain):
        response = _post(bare_client, "/app-uninstalled", {}, test_shop_domain, "app/uninstalled")

        assert response.status_code == 200
        assert response.json()["received"] is True
