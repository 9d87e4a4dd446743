"""
Embedded app entry routes.

Loading the app is the merchant's first authenticated contact, so it:
- creates or reactivates the shop record
- hands the access token to NCF Manager in the background
- resolves the effective plan from NCF Manager (free tier if unreachable)
"""

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from ncf_connector.api.dependencies import (
    get_shop_lifecycle,
    get_plan_reconciler,
    get_token_sync_relay,
)
from ncf_connector.config.settings import get_settings
from ncf_connector.integrations.shopify.admin_client import ShopifyAPIError, ShopInfo
from ncf_connector.platform.shopify_session import AuthenticatedSession, get_authenticated_session
from ncf_connector.services.plan_reconciler import PlanReconciler
from ncf_connector.services.shop_lifecycle import ShopLifecycleService
from ncf_connector.services.token_sync import TokenSyncRelay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/app", tags=["app"])


class PlanResponse(BaseModel):
    """Effective plan as reported by NCF Manager."""
    plan: str
    monthly_limit: int
    invoices_this_month: int
    usage_percent: int
    billing_source: Optional[str] = None
    can_upgrade_here: bool
    message: Optional[str] = None


class AppHomeResponse(BaseModel):
    """Data for the app home page."""
    shop_domain: str
    shop_name: Optional[str]
    plan: PlanResponse
    can_subscribe: bool
    manager_url: str


class OrderSummary(BaseModel):
    id: str
    name: str
    total_price: Optional[str] = None
    currency_code: Optional[str] = None
    created_at: Optional[str] = None


class OrdersResponse(BaseModel):
    orders: list[OrderSummary]


def _manager_entry_url(shop_domain: str) -> str:
    settings = get_settings()
    return f"{settings.ncf_manager_url}/auth/shopify?shop={quote(shop_domain, safe='')}"


@router.get("", response_model=AppHomeResponse)
async def app_home(
    background_tasks: BackgroundTasks,
    auth: AuthenticatedSession = Depends(get_authenticated_session),
    lifecycle: ShopLifecycleService = Depends(get_shop_lifecycle),
    plan_reconciler: PlanReconciler = Depends(get_plan_reconciler),
    token_sync: TokenSyncRelay = Depends(get_token_sync_relay),
):
    """
    Connect the shop and return its effective plan.

    The token sync runs after the response is sent and never affects it.
    """
    try:
        info = await auth.admin.get_shop_info()
    except ShopifyAPIError as e:
        logger.error("Error fetching shop info", extra={
            "shop_domain": auth.shop_domain,
            "error": str(e)
        })
        info = ShopInfo()

    try:
        shop = lifecycle.upsert_on_install(auth.shop_domain, info)
    except SQLAlchemyError as e:
        logger.error("Error saving shop record", extra={
            "shop_domain": auth.shop_domain,
            "error": str(e)
        })
        shop = None

    background_tasks.add_task(token_sync.relay, auth.shop_domain, auth.access_token)

    snapshot = await plan_reconciler.get_effective_plan(auth.shop_domain)

    return AppHomeResponse(
        shop_domain=auth.shop_domain,
        shop_name=shop.shop_name if shop else info.name,
        plan=PlanResponse(**snapshot.to_dict()),
        can_subscribe=snapshot.can_upgrade_here and not snapshot.entitled_elsewhere,
        manager_url=_manager_entry_url(auth.shop_domain),
    )


@router.get("/open-manager")
async def open_manager(
    background_tasks: BackgroundTasks,
    auth: AuthenticatedSession = Depends(get_authenticated_session),
    token_sync: TokenSyncRelay = Depends(get_token_sync_relay),
):
    """Redirect the merchant into NCF Manager with a fresh token on file there."""
    background_tasks.add_task(token_sync.relay, auth.shop_domain, auth.access_token)
    return RedirectResponse(
        url=_manager_entry_url(auth.shop_domain),
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/orders", response_model=OrdersResponse)
async def recent_orders(
    limit: int = Query(10, ge=1, le=50, description="Number of orders to return"),
    auth: AuthenticatedSession = Depends(get_authenticated_session),
):
    """Preview of the latest orders that NCF Manager receives through orders/create."""
    try:
        orders = await auth.admin.list_orders(first=limit)
    except ShopifyAPIError as e:
        logger.error("Error listing orders", extra={
            "shop_domain": auth.shop_domain,
            "error": str(e)
        })
        return OrdersResponse(orders=[])

    return OrdersResponse(orders=[
        OrderSummary(
            id=order.id,
            name=order.name,
            total_price=order.total_price,
            currency_code=order.currency_code,
            created_at=order.created_at.isoformat() if order.created_at else None,
        )
        for order in orders
    ])
