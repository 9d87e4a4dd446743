"""
Service dependencies for route handlers.

Tests replace these through app.dependency_overrides.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ncf_connector.database.session import get_db_session
from ncf_connector.services.plan_reconciler import PlanReconciler
from ncf_connector.services.shop_lifecycle import ShopLifecycleService
from ncf_connector.services.token_sync import TokenSyncRelay
from ncf_connector.services.webhook_dispatcher import WebhookDispatcher


def get_shop_lifecycle(db: Session = Depends(get_db_session)) -> ShopLifecycleService:
    return ShopLifecycleService(db)


def get_plan_reconciler() -> PlanReconciler:
    return PlanReconciler()


def get_token_sync_relay() -> TokenSyncRelay:
    return TokenSyncRelay()


def get_webhook_dispatcher() -> WebhookDispatcher:
    # No request-scoped session: lifecycle topics open one when they run
    return WebhookDispatcher()
