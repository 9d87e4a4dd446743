"""
API Dependencies module.

Provides shared FastAPI dependencies for route handlers.
"""

from ncf_connector.api.dependencies.services import (
    get_shop_lifecycle,
    get_plan_reconciler,
    get_token_sync_relay,
    get_webhook_dispatcher,
)

__all__ = [
    "get_shop_lifecycle",
    "get_plan_reconciler",
    "get_token_sync_relay",
    "get_webhook_dispatcher",
]
