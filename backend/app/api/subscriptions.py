"""Subscriptions API routes"""
import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.responses import action_response
from app.core.security import require_auth
from app.db.session import get_db
from app.schemas.billing import ChangePlanRequest, OrgCheckoutRequest, SubscriptionCheckoutRequest
from app.services.subscription_service import (
    cancel_subscription, change_subscription_plan, create_org_subscription_checkout,
    create_subscription_checkout, get_current_subscription, get_user_invoices, resume_subscription
)

router = APIRouter(prefix="/api/subscription", tags=["subscriptions"])
logger = logging.getLogger(__name__)


@router.post("/checkout")
def create_subscription_checkout_route(
    checkout_request: SubscriptionCheckoutRequest,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Create Stripe checkout session for a per-user plan"""
    result = create_subscription_checkout(
        user_id,
        checkout_request.plan_id,
        checkout_request.billing_cycle,
        db
    )
    return action_response(result)


@router.post("/org-checkout")
def create_org_checkout_route(
    checkout_request: OrgCheckoutRequest,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Create Stripe checkout session for the user's organization"""
    result = create_org_subscription_checkout(
        user_id,
        checkout_request.plan_code,
        checkout_request.billing_cycle,
        db
    )
    return action_response(result)


@router.post("/cancel")
def cancel_subscription_route(user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    return action_response(cancel_subscription(user_id, db))


@router.post("/resume")
def resume_subscription_route(user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    return action_response(resume_subscription(user_id, db))


@router.post("/change-plan")
def change_plan_route(
    change_request: ChangePlanRequest,
    user_id: str = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Upgrade or downgrade the active subscription"""
    return action_response(change_subscription_plan(user_id, change_request.plan_id, db))


@router.get("/current")
def get_current_subscription_route(user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    """Get user's current subscription (per-user and organization)"""
    try:
        return get_current_subscription(user_id, db)
    except Exception as e:
        logger.error(f"Error loading subscription for user {user_id}: {e}", exc_info=True)
        raise HTTPException(500, "Failed to load subscription")


@router.get("/invoices")
def list_invoices_route(user_id: str = Depends(require_auth), db: Session = Depends(get_db)):
    return {"invoices": get_user_invoices(user_id, db)}
