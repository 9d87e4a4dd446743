"""Tests for TokenSyncRelay."""

import pytest

from ncf_connector.integrations.ncf_manager.exceptions import (
    NcfManagerConnectionError,
    NcfManagerResponseError,
)
from ncf_connector.services.token_sync import TokenSyncRelay


class TestTokenSyncRelay:

    @pytest.mark.asyncio
    async def test_relays_token_once(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()

        assert await TokenSyncRelay(factory).relay(test_shop_domain, "shpat_abc") is True

        client.sync_token.assert_awaited_once_with(test_shop_domain, "shpat_abc")

    @pytest.mark.asyncio
    async def test_manager_error_is_not_raised(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()
        client.sync_token.side_effect = NcfManagerResponseError("bad gateway", status_code=502)

        assert await TokenSyncRelay(factory).relay(test_shop_domain, "shpat_abc") is False
        # Single attempt, no retry
        assert client.sync_token.await_count == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_not_raised(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()
        client.sync_token.side_effect = NcfManagerConnectionError()

        assert await TokenSyncRelay(factory).relay(test_shop_domain, "shpat_abc") is False

    @pytest.mark.asyncio
    async def test_unexpected_error_is_not_raised(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()
        client.sync_token.side_effect = RuntimeError("boom")

        assert await TokenSyncRelay(factory).relay(test_shop_domain, "shpat_abc") is False

    @pytest.mark.asyncio
    async def test_missing_token_skips_call(self, make_ncf_client, test_shop_domain):
        client, factory = make_ncf_client()

        assert await TokenSyncRelay(factory).relay(test_shop_domain, "") is False
        factory.assert_not_called()
