"""Subscription service - user-initiated billing actions.

Checkout creation, cancel, resume and plan changes. Local state for checkouts
is written by the webhook reconciler; the actions here only start the gateway
side and, for cancel/resume/change, mirror the result locally.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from stripe import StripeError

from app.core.config import PAYMENT_SUCCESS_PATH
from app.core.metrics import checkout_sessions_counter
from app.core.security import check_checkout_rate_limit
from app.db.session import atomic
from app.models.enums import BillingCycle, PlanCode, SubscriptionAction, UserSubscriptionStatus
from app.models.organization import Organization
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.schemas.billing import (
    ActionResult, CancelledMetadata, PlanChangedMetadata, ReactivatedMetadata
)
from app.services import stripe_service
from app.services.enrollment_service import BLOCKED_MESSAGE, PAYMENT_SYSTEM_ERROR
from app.services.plan_mapper import get_price_id
from app.services.stripe_service import get_stripe_value
from app.services.subscription_store import (
    append_history, get_active_user_subscription, get_latest_user_subscription,
    get_or_create_organization, get_org_subscription, list_user_invoices
)

logger = logging.getLogger("billing")


def _get_user(user_id: str, db: Session) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

# ============================================================================
# CHECKOUT
# ============================================================================

def create_subscription_checkout(
    user_id: str,
    plan_id: str,
    billing_cycle: str,
    db: Session
) -> ActionResult:
    """Start a Stripe Checkout for a per-user subscription plan.

    The webhook creates the UserSubscription row once checkout completes, so
    nothing is written here except the Stripe customer id.
    """
    if not check_checkout_rate_limit(user_id, action="subscription_checkout"):
        return ActionResult.error(BLOCKED_MESSAGE, blocked=True)

    user = _get_user(user_id, db)
    if not user:
        return ActionResult.error("User not found")

    plan = db.query(SubscriptionPlan).filter(
        SubscriptionPlan.id == plan_id,
        SubscriptionPlan.is_active == True  # noqa: E712
    ).first()
    if not plan:
        return ActionResult.error("Subscription plan not found")

    cycle = BillingCycle.parse(billing_cycle)

    existing = get_active_user_subscription(user_id, db)
    if existing and existing.plan_id == plan.id:
        return ActionResult.error("You already have an active subscription to this plan")

    price_id = plan.stripe_price_id_for(cycle)
    if not price_id:
        logger.error(f"Plan {plan.id} has no Stripe price for {cycle.value} billing")
        return ActionResult.error("Stripe price not configured for this plan. Please contact support.")

    metadata = {
        "userId": user_id,
        "planId": plan.id,
        "billingCycle": cycle.value.lower(),
    }

    try:
        customer_id = stripe_service.get_or_create_customer_id(user, db)
        session = stripe_service.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            mode="subscription",
            metadata=metadata,
            success_url=stripe_service.build_redirect_url(PAYMENT_SUCCESS_PATH, type="subscription"),
            cancel_url=stripe_service.build_redirect_url(
                "/checkout", plan=plan.slug, billing=cycle.value.lower()
            ),
            subscription_metadata=metadata,
        )
    except StripeError as e:
        logger.error(f"Stripe error creating subscription checkout for user {user_id}: {e}", exc_info=True)
        checkout_sessions_counter.labels(kind="subscription", status="error").inc()
        return ActionResult.error(PAYMENT_SYSTEM_ERROR)

    checkout_sessions_counter.labels(kind="subscription", status="created").inc()
    logger.info(f"Created subscription checkout {session['id']} for user {user_id}, plan {plan.id} ({cycle.value})")
    return ActionResult.success("Checkout session created", checkout_url=session["url"])


def create_org_subscription_checkout(
    user_id: str,
    plan_code: PlanCode,
    billing_cycle: str,
    db: Session
) -> ActionResult:
    """Start a Stripe Checkout for the organization owned by the user."""
    if not check_checkout_rate_limit(user_id, action="org_checkout"):
        return ActionResult.error(BLOCKED_MESSAGE, blocked=True)

    user = _get_user(user_id, db)
    if not user:
        return ActionResult.error("User not found")

    cycle = BillingCycle.parse(billing_cycle)
    price_id = get_price_id(plan_code, cycle)
    if not price_id:
        logger.error(f"No Stripe price configured for {plan_code} ({cycle.value})")
        return ActionResult.error("Stripe price not configured for this plan. Please contact support.")

    code = PlanCode(plan_code)
    with atomic(db):
        org = get_or_create_organization(user_id, db)

    metadata = {
        "orgId": org.id,
        "planCode": code.value,
        "billingCycle": cycle.value.lower(),
    }

    try:
        customer_id = stripe_service.get_or_create_customer_id(user, db)
        session = stripe_service.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            mode="subscription",
            metadata=metadata,
            success_url=stripe_service.build_redirect_url(PAYMENT_SUCCESS_PATH, type="organization"),
            cancel_url=stripe_service.build_redirect_url("/pricing"),
            subscription_metadata=metadata,
        )
    except StripeError as e:
        logger.error(f"Stripe error creating org checkout for user {user_id}: {e}", exc_info=True)
        checkout_sessions_counter.labels(kind="org_subscription", status="error").inc()
        return ActionResult.error(PAYMENT_SYSTEM_ERROR)

    checkout_sessions_counter.labels(kind="org_subscription", status="created").inc()
    logger.info(f"Created org checkout {session['id']} for org {org.id}, plan {code.value} ({cycle.value})")
    return ActionResult.success("Checkout session created", checkout_url=session["url"])

# ============================================================================
# CANCEL / RESUME / CHANGE PLAN
# ============================================================================

def cancel_subscription(user_id: str, db: Session) -> ActionResult:
    """Cancel the user's Active/Trial subscription.

    A gateway failure is logged and the local cancel still goes through.
    """
    subscription = get_active_user_subscription(user_id, db)
    if not subscription:
        return ActionResult.error("No active subscription found")

    if subscription.stripe_subscription_id:
        try:
            stripe_service.cancel_subscription(subscription.stripe_subscription_id)
        except StripeError as e:
            logger.error(
                f"Failed to cancel Stripe subscription {subscription.stripe_subscription_id}: {e}",
                exc_info=True
            )

    with atomic(db):
        subscription.status = UserSubscriptionStatus.CANCELLED
        subscription.auto_renew = False
        subscription.cancelled_at = datetime.now(timezone.utc)
        append_history(
            user_id, subscription.id, SubscriptionAction.CANCELLED, db,
            old_plan_id=subscription.plan_id,
            metadata=CancelledMetadata(reason="user_request", cancelled_by="user"),
        )

    logger.info(f"User {user_id} cancelled subscription {subscription.id}")
    return ActionResult.success(
        "Subscription cancelled successfully. You'll retain access until the end of your billing period."
    )


def resume_subscription(user_id: str, db: Session) -> ActionResult:
    """Reactivate the user's most recent Cancelled subscription."""
    subscription = get_latest_user_subscription(user_id, db)
    if not subscription or subscription.status != UserSubscriptionStatus.CANCELLED:
        return ActionResult.error("No cancelled subscription found")

    if subscription.stripe_subscription_id:
        try:
            stripe_service.update_subscription(
                subscription.stripe_subscription_id,
                cancel_at_period_end=False
            )
        except StripeError as e:
            logger.error(
                f"Failed to resume Stripe subscription {subscription.stripe_subscription_id}: {e}",
                exc_info=True
            )
            return ActionResult.error(PAYMENT_SYSTEM_ERROR)

    with atomic(db):
        subscription.status = UserSubscriptionStatus.ACTIVE
        subscription.auto_renew = True
        subscription.cancelled_at = None
        append_history(
            user_id, subscription.id, SubscriptionAction.REACTIVATED, db,
            new_plan_id=subscription.plan_id,
            metadata=ReactivatedMetadata(),
        )

    logger.info(f"User {user_id} resumed subscription {subscription.id}")
    return ActionResult.success("Subscription resumed successfully")


def change_subscription_plan(user_id: str, new_plan_id: str, db: Session) -> ActionResult:
    """Switch the active subscription to another plan.

    Upgrades (higher monthly price) are invoiced immediately with proration;
    downgrades take effect without proration. Nothing changes locally when
    Stripe rejects the update.
    """
    subscription = get_active_user_subscription(user_id, db)
    if not subscription:
        return ActionResult.error("No active subscription found")

    new_plan = db.query(SubscriptionPlan).filter(
        SubscriptionPlan.id == new_plan_id,
        SubscriptionPlan.is_active == True  # noqa: E712
    ).first()
    if not new_plan:
        return ActionResult.error("New plan not found")

    if subscription.plan_id == new_plan.id:
        return ActionResult.error("You are already on this plan")

    is_upgrade = new_plan.price_monthly > subscription.plan.price_monthly
    proration = "always_invoice" if is_upgrade else "none"

    if subscription.stripe_subscription_id:
        price_id = new_plan.stripe_price_id_for(subscription.billing_cycle)
        if price_id:
            try:
                stripe_sub = stripe_service.retrieve_subscription(subscription.stripe_subscription_id)
                items = get_stripe_value(get_stripe_value(stripe_sub, "items"), "data") or []
                if not items:
                    logger.error(f"Stripe subscription {subscription.stripe_subscription_id} has no items")
                    return ActionResult.error(PAYMENT_SYSTEM_ERROR)
                stripe_service.update_subscription(
                    subscription.stripe_subscription_id,
                    items=[{"id": get_stripe_value(items[0], "id"), "price": price_id}],
                    proration_behavior=proration,
                )
            except StripeError as e:
                logger.error(
                    f"Failed to update Stripe subscription {subscription.stripe_subscription_id}: {e}",
                    exc_info=True
                )
                return ActionResult.error(PAYMENT_SYSTEM_ERROR)

    old_plan_id = subscription.plan_id
    with atomic(db):
        subscription.plan_id = new_plan.id
        append_history(
            user_id, subscription.id,
            SubscriptionAction.UPGRADED if is_upgrade else SubscriptionAction.DOWNGRADED,
            db,
            old_plan_id=old_plan_id,
            new_plan_id=new_plan.id,
            metadata=PlanChangedMetadata(proration=proration),
        )

    logger.info(f"User {user_id} changed plan {old_plan_id} -> {new_plan.id} ({'upgrade' if is_upgrade else 'downgrade'})")
    return ActionResult.success(f"Plan {'upgraded' if is_upgrade else 'downgraded'} successfully")

# ============================================================================
# READ MODELS
# ============================================================================

def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def get_current_subscription(user_id: str, db: Session) -> Dict[str, Any]:
    """Current per-user subscription and organization subscription, if any."""
    subscription = get_active_user_subscription(user_id, db) or get_latest_user_subscription(user_id, db)

    user_payload = None
    if subscription:
        user_payload = {
            "id": subscription.id,
            "planId": subscription.plan_id,
            "planName": subscription.plan.name,
            "status": subscription.status.value,
            "billingCycle": subscription.billing_cycle.value,
            "startDate": _format_datetime(subscription.start_date),
            "endDate": _format_datetime(subscription.end_date),
            "nextBillingDate": _format_datetime(subscription.next_billing_date),
            "autoRenew": subscription.auto_renew,
            "cancelledAt": _format_datetime(subscription.cancelled_at),
        }

    org_payload = None
    org = db.query(Organization).filter(Organization.owner_user_id == user_id).first()
    if org:
        org_sub = get_org_subscription(org.id, db)
        if org_sub:
            org_payload = {
                "orgId": org_sub.org_id,
                "planCode": org_sub.plan_code,
                "status": org_sub.status.value,
                "currentPeriodStart": _format_datetime(org_sub.current_period_start),
                "currentPeriodEnd": _format_datetime(org_sub.current_period_end),
                "cancelAtPeriodEnd": org_sub.cancel_at_period_end,
            }

    return {"subscription": user_payload, "organizationSubscription": org_payload}


def get_user_invoices(user_id: str, db: Session) -> List[Dict[str, Any]]:
    return [
        {
            "id": invoice.id,
            "invoiceNumber": invoice.invoice_number,
            "planName": invoice.plan_name,
            "amount": invoice.amount,
            "totalAmount": invoice.total_amount,
            "paymentStatus": invoice.payment_status.value,
            "paymentDate": _format_datetime(invoice.payment_date),
            "createdAt": _format_datetime(invoice.created_at),
        }
        for invoice in list_user_invoices(user_id, db)
    ]
