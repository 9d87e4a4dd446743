"""
Access token hand-off to NCF Manager.

Every authenticated app load sends the shop's current Admin API token to
NCF Manager so it can read orders on the shop's behalf. Routes schedule
relay() as a background task; it makes one attempt and never raises.
"""

import logging
from typing import Callable

from ncf_connector.integrations.ncf_manager.client import NcfManagerClient, get_ncf_manager_client
from ncf_connector.integrations.ncf_manager.exceptions import NcfManagerError

logger = logging.getLogger(__name__)


class TokenSyncRelay:
    """Best-effort forwarder of access tokens."""

    def __init__(self, client_factory: Callable[[], NcfManagerClient] = get_ncf_manager_client):
        self._client_factory = client_factory

    async def relay(self, shop_domain: str, access_token: str) -> bool:
        """
        Send the token once.

        Returns:
            True if NCF Manager accepted it
        """
        if not access_token:
            logger.warning("No access token to sync", extra={"shop_domain": shop_domain})
            return False

        try:
            async with self._client_factory() as client:
                await client.sync_token(shop_domain, access_token)
        except NcfManagerError as e:
            logger.error("Token sync with NCF Manager failed", extra={
                "shop_domain": shop_domain,
                "error": str(e),
                "status_code": e.status_code
            })
            return False
        except Exception as e:
            logger.error("Unexpected error during token sync", extra={
                "shop_domain": shop_domain,
                "error": str(e)
            })
            return False

        logger.info("Access token synced with NCF Manager", extra={"shop_domain": shop_domain})
        return True
