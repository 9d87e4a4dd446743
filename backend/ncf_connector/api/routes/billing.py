"""
Billing routes for the Pro subscription.

- GET /app/billing: current Shopify subscription state
- POST /app/billing: create the subscription and redirect to Shopify's confirmation page
- GET /app/billing/callback: Shopify's return URL after approve/decline

All routes require an authenticated Shopify session.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ncf_connector.api.dependencies import get_plan_reconciler
from ncf_connector.database.session import get_db_session
from ncf_connector.integrations.shopify.admin_client import ShopifyAPIError
from ncf_connector.platform.shopify_session import AuthenticatedSession, get_authenticated_session
from ncf_connector.services.plan_reconciler import PlanReconciler
from ncf_connector.services.subscription_service import SubscriptionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/app/billing", tags=["billing"])

APP_HOME_PATH = "/app"


class UserError(BaseModel):
    field: Optional[Any] = None
    message: str


class CreateSubscriptionErrorResponse(BaseModel):
    """Returned instead of a redirect when the subscription cannot be created."""
    success: bool = False
    errors: list[UserError]


class SubscriptionResponse(BaseModel):
    id: str
    name: str
    status: str
    current_period_end: Optional[str] = None
    test: bool = False


class BillingStatusResponse(BaseModel):
    has_active_subscription: bool
    subscription: Optional[SubscriptionResponse] = None


def get_subscription_orchestrator(
    auth: AuthenticatedSession = Depends(get_authenticated_session),
    db_session: Session = Depends(get_db_session),
    plan_reconciler: PlanReconciler = Depends(get_plan_reconciler),
) -> SubscriptionOrchestrator:
    """Get subscription orchestrator bound to the request's Shopify session."""
    return SubscriptionOrchestrator(db_session, auth.admin, plan_reconciler=plan_reconciler)


@router.get("", response_model=BillingStatusResponse)
async def billing_status(
    auth: AuthenticatedSession = Depends(get_authenticated_session),
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    """
    Report the Shopify subscription state, mirroring an active one locally.

    When Shopify cannot be read the shop is reported without a subscription.
    """
    try:
        billing = await orchestrator.sync_active_subscription(auth.shop_domain)
    except ShopifyAPIError as e:
        logger.error("Error reading subscriptions", extra={
            "shop_domain": auth.shop_domain,
            "error": str(e)
        })
        return BillingStatusResponse(has_active_subscription=False)

    subscription = None
    if billing.subscription:
        sub = billing.subscription
        subscription = SubscriptionResponse(
            id=sub.id,
            name=sub.name,
            status=sub.status,
            current_period_end=sub.current_period_end.isoformat() if sub.current_period_end else None,
            test=sub.test,
        )

    return BillingStatusResponse(
        has_active_subscription=billing.has_active_subscription,
        subscription=subscription,
    )


@router.post("")
async def create_subscription(
    auth: AuthenticatedSession = Depends(get_authenticated_session),
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    """
    Create the Pro subscription.

    Redirects to Shopify's confirmation page on success; otherwise returns
    the errors as reported.
    """
    logger.info("Creating subscription", extra={"shop_domain": auth.shop_domain})

    result = await orchestrator.create_subscription(auth.shop_domain)

    if not result.success:
        return CreateSubscriptionErrorResponse(
            errors=[UserError(field=e.get("field"), message=e.get("message", "")) for e in result.errors]
        )

    return RedirectResponse(url=result.confirmation_url, status_code=status.HTTP_303_SEE_OTHER)


@router.get("/callback")
async def billing_callback(
    charge_id: Optional[str] = Query(None, description="Shopify charge ID"),
    auth: AuthenticatedSession = Depends(get_authenticated_session),
    orchestrator: SubscriptionOrchestrator = Depends(get_subscription_orchestrator),
):
    """
    Handle the merchant's return from Shopify's confirmation page.

    A missing charge_id means the merchant cancelled. If Shopify cannot be
    read nothing is written and the merchant lands on the app home.
    """
    logger.info("Billing callback received", extra={
        "shop_domain": auth.shop_domain,
        "charge_id": charge_id
    })

    try:
        await orchestrator.confirm_subscription(auth.shop_domain, charge_id)
    except ShopifyAPIError as e:
        logger.error("Error confirming subscription", extra={
            "shop_domain": auth.shop_domain,
            "charge_id": charge_id,
            "error": str(e)
        })

    return RedirectResponse(url=APP_HOME_PATH, status_code=status.HTTP_302_FOUND)
