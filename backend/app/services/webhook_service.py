"""Stripe webhook reconciler.

Verifies each delivery, records it in the stripe_events ledger and applies it
to local state. Every handler is safe to run more than once for the same
event: creation paths look the row up by its Stripe id first, and updates
overwrite fields with what Stripe reports instead of adjusting them.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from stripe import SignatureVerificationError, StripeError

from app.core.config import settings
from app.core.exceptions import (
    WebhookError, WebhookNotConfiguredError, WebhookNotFoundError,
    WebhookSignatureError, WebhookValidationError
)
from app.core.logging import log_webhook_event
from app.core.metrics import webhook_events_counter
from app.db.session import atomic
from app.models.enums import (
    ACTIVE_USER_SUBSCRIPTION_STATUSES, BillingCycle, PaymentStatus, SubscriptionAction,
    SubscriptionStatus, UserSubscriptionStatus
)
from app.models.organization import Organization
from app.models.invoice import Invoice
from app.models.stripe_event import StripeEvent
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.schemas.billing import CreatedMetadata, ExpiredMetadata, RenewedMetadata
from app.services import stripe_service
from app.services.enrollment_service import activate_enrollment_from_checkout
from app.services.plan_mapper import (
    lookup_plan_code, map_gateway_status, map_gateway_status_for_user, map_price_to_plan_code
)
from app.services.stripe_service import (
    get_stripe_id, get_stripe_value, get_subscription_period, get_subscription_price_id, to_datetime
)
from app.services.subscription_store import (
    OrgScoped, UserScoped, append_history, cancel_active_user_subscriptions, create_invoice,
    create_user_subscription, get_other_active_user_subscription, resolve_subscription_target,
    upsert_org_subscription
)

logger = logging.getLogger(__name__)


@dataclass
class WebhookOutcome:
    """Result of one delivery: processed, noop, ignored or already_processed"""
    status: str
    event_id: Optional[str] = None
    event_type: Optional[str] = None


# ============================================================================
# EVENT LEDGER
# ============================================================================

def log_stripe_event(event_id: str, event_type: str, payload: dict, db: Session) -> StripeEvent:
    """Return the ledger row for an event, inserting it on first delivery."""
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        return stripe_event

    stripe_event = StripeEvent(
        stripe_event_id=event_id,
        event_type=event_type,
        payload=payload,
        processed=False
    )
    db.add(stripe_event)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent delivery of the same event inserted it first
        db.rollback()
        return db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).one()
    db.refresh(stripe_event)
    return stripe_event


def mark_stripe_event_processed(event_id: str, db: Session) -> None:
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        stripe_event.processed = True
        stripe_event.processed_at = datetime.now(timezone.utc)
        stripe_event.error_message = None
        db.commit()


def mark_stripe_event_failed(event_id: str, error_message: str, db: Session) -> None:
    """Record a handler failure; the row stays unprocessed so a redelivery runs again."""
    stripe_event = db.query(StripeEvent).filter(StripeEvent.stripe_event_id == event_id).first()
    if stripe_event:
        stripe_event.processed = False
        stripe_event.error_message = error_message[:2000]
        db.commit()

# ============================================================================
# ENTRY POINT
# ============================================================================

def verify_event(payload: bytes, sig_header: Optional[str]):
    """Verify a raw delivery against the configured webhook secret.

    Raises:
        WebhookNotConfiguredError: No webhook secret configured (fail closed)
        WebhookSignatureError: Missing header, bad payload or bad signature
    """
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        logger.error("Stripe webhook secret not configured, rejecting delivery")
        raise WebhookNotConfiguredError()

    if not sig_header:
        raise WebhookSignatureError("Missing stripe-signature header")

    try:
        return stripe_service.construct_event(payload, sig_header, secret)
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise WebhookSignatureError("Invalid payload")
    except SignatureVerificationError as e:
        logger.error(f"Invalid webhook signature: {e}")
        raise WebhookSignatureError()


def _raw_payload(payload: bytes) -> dict:
    try:
        return json.loads(payload)
    except (TypeError, ValueError):
        return {}


def process_stripe_webhook(payload: bytes, sig_header: Optional[str], db: Session) -> WebhookOutcome:
    """Verify, record and apply one Stripe webhook delivery.

    Args:
        payload: Raw request body as bytes (must not be re-serialized)
        sig_header: Value of the stripe-signature header
        db: Database session

    Returns:
        WebhookOutcome describing what was done

    Raises:
        WebhookError: Rejected deliveries, carrying the HTTP status for Stripe
        Exception: Unexpected failures; the caller answers 500 so Stripe retries
    """
    event = verify_event(payload, sig_header)

    event_id = get_stripe_value(event, "id")
    event_type = get_stripe_value(event, "type")
    data = get_stripe_value(event, "data") or {}
    data_object = get_stripe_value(data, "object")

    stripe_event = log_stripe_event(event_id, event_type, _raw_payload(payload), db)
    if stripe_event.processed:
        logger.info(f"Webhook event {event_id} already processed")
        webhook_events_counter.labels(event_type=event_type, outcome="noop").inc()
        return WebhookOutcome("already_processed", event_id, event_type)

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.debug(f"Ignoring unhandled webhook event type {event_type}")
        mark_stripe_event_processed(event_id, db)
        webhook_events_counter.labels(event_type=event_type, outcome="ignored").inc()
        return WebhookOutcome("ignored", event_id, event_type)

    try:
        status = handler(data_object, event, db)
    except WebhookError as e:
        db.rollback()
        log_webhook_event(
            "webhook_rejected", logging.WARNING,
            event_id=event_id, event_type=event_type, reason=e.reason, status_code=e.status_code,
        )
        mark_stripe_event_failed(event_id, e.reason, db)
        webhook_events_counter.labels(event_type=event_type, outcome="rejected").inc()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error processing webhook {event_id} ({event_type}): {e}", exc_info=True)
        mark_stripe_event_failed(event_id, str(e), db)
        webhook_events_counter.labels(event_type=event_type, outcome="failed").inc()
        raise

    mark_stripe_event_processed(event_id, db)
    webhook_events_counter.labels(event_type=event_type, outcome=status).inc()
    logger.info(f"Processed webhook event {event_id} of type {event_type}: {status}")
    return WebhookOutcome(status, event_id, event_type)

# ============================================================================
# CHECKOUT
# ============================================================================

def handle_checkout_session_completed(session: Any, event: Any, db: Session) -> str:
    """Route a completed checkout to the flow that started it"""
    mode = get_stripe_value(session, "mode")
    metadata = get_stripe_value(session, "metadata") or {}

    if mode == "subscription":
        if get_stripe_value(metadata, "orgId"):
            return _handle_org_checkout(session, db)
        return _handle_user_subscription_checkout(session, event, db)

    return activate_enrollment_from_checkout(session, db)


def _handle_org_checkout(session: Any, db: Session) -> str:
    metadata = get_stripe_value(session, "metadata") or {}
    org_id = get_stripe_value(metadata, "orgId")
    metadata_plan_code = get_stripe_value(metadata, "planCode")
    subscription_id = get_stripe_id(get_stripe_value(session, "subscription"))
    customer_id = get_stripe_id(get_stripe_value(session, "customer"))

    if not subscription_id:
        raise WebhookValidationError("Subscription id not found")

    org = db.query(Organization).filter(Organization.id == org_id).first()
    if not org:
        raise WebhookNotFoundError("Organization not found")

    stripe_sub = stripe_service.retrieve_subscription(subscription_id)
    price_id = get_subscription_price_id(stripe_sub)

    if lookup_plan_code(price_id) is None:
        log_webhook_event(
            "price_mapping_miss", logging.WARNING,
            price_id=price_id, fallback_plan_code=metadata_plan_code, org_id=org_id,
        )
    plan_code = map_price_to_plan_code(price_id, fallback=metadata_plan_code)
    if plan_code is None:
        raise WebhookValidationError("Plan code not found")

    gateway_status = get_stripe_value(stripe_sub, "status")
    status = SubscriptionStatus.TRIALING if gateway_status == "trialing" else SubscriptionStatus.ACTIVE
    period_start, period_end = get_subscription_period(stripe_sub)

    with atomic(db):
        upsert_org_subscription(
            org_id, db,
            plan_code=plan_code.value,
            status=status,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(get_stripe_value(stripe_sub, "cancel_at_period_end", False)),
            stripe_customer_id=customer_id,
            stripe_subscription_id=subscription_id,
            stripe_price_id=price_id,
        )

    log_webhook_event(
        "org_subscription_activated",
        org_id=org_id, stripe_subscription_id=subscription_id,
        plan_code=plan_code.value, status=status.value,
    )
    return "processed"


def compute_billing_period(
    stripe_sub: Any,
    billing_cycle: BillingCycle,
    now: datetime
) -> Tuple[datetime, datetime]:
    """Gateway period when reported, otherwise one cycle starting now."""
    period_start, period_end = get_subscription_period(stripe_sub)
    start = period_start or now
    if period_end is None:
        days = 365 if billing_cycle == BillingCycle.YEARLY else 30
        period_end = start + timedelta(days=days)
    return start, period_end


def _handle_user_subscription_checkout(session: Any, event: Any, db: Session) -> str:
    metadata = get_stripe_value(session, "metadata") or {}
    user_id = get_stripe_value(metadata, "userId")
    plan_id = get_stripe_value(metadata, "planId")
    customer_id = get_stripe_id(get_stripe_value(session, "customer"))

    if not plan_id or not user_id or not customer_id:
        raise WebhookValidationError("Missing subscription metadata")

    subscription_id = get_stripe_id(get_stripe_value(session, "subscription"))
    if not subscription_id:
        raise WebhookValidationError("Subscription id not found")

    target = resolve_subscription_target(subscription_id, db)
    if isinstance(target, UserScoped):
        log_webhook_event(
            "user_subscription_exists",
            user_id=user_id, stripe_subscription_id=subscription_id,
        )
        return "noop"

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise WebhookNotFoundError("User not found")

    plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()
    if not plan:
        raise WebhookNotFoundError("Plan not found")

    try:
        billing_cycle = BillingCycle.parse(get_stripe_value(metadata, "billingCycle", "monthly"))
    except ValueError:
        raise WebhookValidationError("Invalid billing cycle")

    stripe_sub = stripe_service.retrieve_subscription(subscription_id)
    now = datetime.now(timezone.utc)
    start_date, end_date = compute_billing_period(stripe_sub, billing_cycle, now)

    if get_stripe_value(stripe_sub, "status") == "trialing" or plan.trial_days > 0:
        status = UserSubscriptionStatus.TRIAL
    else:
        status = UserSubscriptionStatus.ACTIVE

    with atomic(db):
        superseded = cancel_active_user_subscriptions(user_id, db, now=now)

        subscription = create_user_subscription(
            user_id, db,
            plan_id=plan.id,
            status=status,
            billing_cycle=billing_cycle,
            start_date=start_date,
            end_date=end_date,
            next_billing_date=end_date,
            auto_renew=not get_stripe_value(stripe_sub, "cancel_at_period_end", False),
            stripe_subscription_id=subscription_id,
            stripe_customer_id=customer_id,
        )

        append_history(
            user_id, subscription.id, SubscriptionAction.CREATED, db,
            new_plan_id=plan.id,
            metadata=CreatedMetadata(
                stripe_event_id=get_stripe_value(event, "id"),
                checkout_session_id=get_stripe_value(session, "id"),
                billing_cycle=billing_cycle,
            ),
        )

        if get_stripe_value(session, "payment_status") == "paid":
            amount_total = get_stripe_value(session, "amount_total", plan.price_for(billing_cycle))
            create_invoice(
                user_id, db,
                subscription_id=subscription.id,
                plan_name=plan.name,
                amount=int(get_stripe_value(session, "amount_subtotal", amount_total)),
                total_amount=int(amount_total),
                payment_status=PaymentStatus.PAID,
                payment_date=now,
                stripe_invoice_id=get_stripe_id(get_stripe_value(session, "invoice")),
                stripe_payment_intent_id=get_stripe_id(get_stripe_value(session, "payment_intent")),
            )

    log_webhook_event(
        "user_subscription_created",
        user_id=user_id, plan_id=plan.id, subscription_id=subscription.id,
        stripe_subscription_id=subscription_id, status=status.value,
        superseded=[s.id for s in superseded],
    )
    _cancel_replaced_at_gateway(superseded, subscription_id)
    return "processed"


def _cancel_replaced_at_gateway(superseded, new_subscription_id: str) -> None:
    """Stop billing for subscriptions replaced by a new checkout.

    Local rows are already cancelled; a Stripe failure is only logged.
    """
    for sub in superseded:
        stripe_id = sub.stripe_subscription_id
        if not stripe_id or stripe_id == new_subscription_id:
            continue
        try:
            stripe_service.cancel_subscription(stripe_id)
        except StripeError as e:
            log_webhook_event(
                "replaced_subscription_cancel_failed", logging.WARNING,
                user_id=sub.user_id, stripe_subscription_id=stripe_id, error=str(e),
            )

# ============================================================================
# SUBSCRIPTION LIFECYCLE
# ============================================================================

def _user_status_keeping_single_active(
    sub: Any,
    status: UserSubscriptionStatus,
    db: Session
) -> UserSubscriptionStatus:
    """Status to store on a user subscription without giving the user a second active row.

    A late event for a subscription that a newer one replaced leaves the
    replaced row as it is.
    """
    if status not in ACTIVE_USER_SUBSCRIPTION_STATUSES or sub.status in ACTIVE_USER_SUBSCRIPTION_STATUSES:
        return status

    current = get_other_active_user_subscription(sub.user_id, sub.id, db)
    if current is None:
        return status

    log_webhook_event(
        "replaced_subscription_not_reactivated", logging.WARNING,
        user_id=sub.user_id, subscription_id=sub.id, active_subscription_id=current.id,
        requested_status=status.value, kept_status=sub.status.value,
    )
    return sub.status

def _find_plan_by_price(price_id: Optional[str], db: Session) -> Tuple[Optional[SubscriptionPlan], Optional[BillingCycle]]:
    if not price_id:
        return None, None
    plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.stripe_price_id_monthly == price_id).first()
    if plan:
        return plan, BillingCycle.MONTHLY
    plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.stripe_price_id_yearly == price_id).first()
    if plan:
        return plan, BillingCycle.YEARLY
    return None, None


def handle_subscription_upserted(stripe_sub: Any, event: Any, db: Session) -> str:
    """customer.subscription.created / customer.subscription.updated

    Overwrites status, period and renewal flag with what Stripe reports, so
    replaying any prefix of the event stream converges on the latest state.
    """
    subscription_id = get_stripe_value(stripe_sub, "id")
    target = resolve_subscription_target(subscription_id, db)
    if target is None:
        log_webhook_event("subscription_not_tracked", stripe_subscription_id=subscription_id)
        return "ignored"

    gateway_status = get_stripe_value(stripe_sub, "status")
    period_start, period_end = get_subscription_period(stripe_sub)
    cancel_at_period_end = bool(get_stripe_value(stripe_sub, "cancel_at_period_end", False))
    price_id = get_subscription_price_id(stripe_sub)

    if isinstance(target, OrgScoped):
        sub = target.subscription
        with atomic(db):
            sub.status = map_gateway_status(gateway_status)
            if period_start:
                sub.current_period_start = period_start
            if period_end:
                sub.current_period_end = period_end
            sub.cancel_at_period_end = cancel_at_period_end
            if price_id:
                sub.stripe_price_id = price_id
                plan_code = lookup_plan_code(price_id)
                if plan_code is not None:
                    sub.plan_code = plan_code.value
                else:
                    log_webhook_event(
                        "price_mapping_miss", logging.WARNING,
                        price_id=price_id, kept_plan_code=sub.plan_code, org_id=sub.org_id,
                    )

        log_webhook_event(
            "org_subscription_synced",
            org_id=sub.org_id, stripe_subscription_id=subscription_id,
            gateway_status=gateway_status, status=sub.status.value,
        )
        return "processed"

    sub = target.subscription
    plan, billing_cycle = _find_plan_by_price(price_id, db)
    with atomic(db):
        sub.status = _user_status_keeping_single_active(sub, map_gateway_status_for_user(gateway_status), db)
        if period_end:
            sub.end_date = period_end
            sub.next_billing_date = period_end
        sub.auto_renew = not cancel_at_period_end and sub.status not in (
            UserSubscriptionStatus.CANCELLED, UserSubscriptionStatus.EXPIRED
        )
        if plan is not None:
            sub.plan_id = plan.id
            sub.billing_cycle = billing_cycle

    log_webhook_event(
        "user_subscription_synced",
        user_id=sub.user_id, subscription_id=sub.id, stripe_subscription_id=subscription_id,
        gateway_status=gateway_status, status=sub.status.value,
    )
    return "processed"


def handle_subscription_deleted(stripe_sub: Any, event: Any, db: Session) -> str:
    """customer.subscription.deleted - the subscription has ended"""
    subscription_id = get_stripe_value(stripe_sub, "id")
    target = resolve_subscription_target(subscription_id, db)
    if target is None:
        log_webhook_event("subscription_not_tracked", stripe_subscription_id=subscription_id)
        return "ignored"

    if isinstance(target, OrgScoped):
        sub = target.subscription
        with atomic(db):
            sub.status = SubscriptionStatus.EXPIRED
        log_webhook_event("org_subscription_expired", org_id=sub.org_id, stripe_subscription_id=subscription_id)
        return "processed"

    sub = target.subscription
    if sub.status == UserSubscriptionStatus.EXPIRED:
        return "noop"

    with atomic(db):
        sub.status = UserSubscriptionStatus.EXPIRED
        sub.auto_renew = False
        sub.cancelled_at = sub.cancelled_at or datetime.now(timezone.utc)
        append_history(
            sub.user_id, sub.id, SubscriptionAction.EXPIRED, db,
            old_plan_id=sub.plan_id,
            metadata=ExpiredMetadata(source="customer.subscription.deleted"),
        )

    log_webhook_event(
        "user_subscription_expired",
        user_id=sub.user_id, subscription_id=sub.id, stripe_subscription_id=subscription_id,
    )
    return "processed"

# ============================================================================
# INVOICES
# ============================================================================

def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    """Subscription of an invoice; newer API versions nest it under parent."""
    subscription_id = get_stripe_id(get_stripe_value(invoice, "subscription"))
    if subscription_id:
        return subscription_id
    parent = get_stripe_value(invoice, "parent")
    details = get_stripe_value(parent, "subscription_details")
    return get_stripe_id(get_stripe_value(details, "subscription"))


def _invoice_period_end(invoice: Any) -> Optional[datetime]:
    """End of the period the invoice pays for (line item period when present)."""
    lines = get_stripe_value(invoice, "lines")
    data = get_stripe_value(lines, "data") or []
    if data:
        period = get_stripe_value(data[0], "period")
        end = to_datetime(get_stripe_value(period, "end"))
        if end:
            return end
    return to_datetime(get_stripe_value(invoice, "period_end"))


def handle_invoice_paid(invoice: Any, event: Any, db: Session) -> str:
    """invoice.payment_succeeded / invoice.paid - a billing period was paid"""
    subscription_id = _invoice_subscription_id(invoice)
    target = resolve_subscription_target(subscription_id, db)
    if target is None:
        log_webhook_event(
            "invoice_not_tracked",
            stripe_invoice_id=get_stripe_value(invoice, "id"), stripe_subscription_id=subscription_id,
        )
        return "ignored"

    period_end = _invoice_period_end(invoice)

    if isinstance(target, OrgScoped):
        sub = target.subscription
        with atomic(db):
            sub.status = SubscriptionStatus.ACTIVE
            if period_end:
                sub.current_period_end = period_end
        log_webhook_event(
            "org_invoice_paid",
            org_id=sub.org_id, stripe_subscription_id=subscription_id, period_end=period_end,
        )
        return "processed"

    sub = target.subscription
    stripe_invoice_id = get_stripe_value(invoice, "id")

    # invoice.paid and invoice.payment_succeeded both fire for one payment
    already_recorded = db.query(Invoice.id).filter(
        Invoice.stripe_invoice_id == stripe_invoice_id,
        Invoice.payment_status == PaymentStatus.PAID
    ).first()

    amount_paid = int(get_stripe_value(invoice, "amount_paid", 0))
    with atomic(db):
        sub.status = _user_status_keeping_single_active(sub, UserSubscriptionStatus.ACTIVE, db)
        if period_end:
            sub.end_date = period_end
            sub.next_billing_date = period_end

        if not already_recorded:
            create_invoice(
                sub.user_id, db,
                subscription_id=sub.id,
                plan_name=sub.plan.name,
                amount=int(get_stripe_value(invoice, "subtotal", amount_paid)),
                total_amount=int(get_stripe_value(invoice, "total", amount_paid)),
                payment_status=PaymentStatus.PAID,
                payment_date=datetime.now(timezone.utc),
                stripe_invoice_id=stripe_invoice_id,
                stripe_payment_intent_id=get_stripe_id(get_stripe_value(invoice, "payment_intent")),
            )
            if sub.status == UserSubscriptionStatus.ACTIVE:
                append_history(
                    sub.user_id, sub.id, SubscriptionAction.RENEWED, db,
                    old_plan_id=sub.plan_id,
                    new_plan_id=sub.plan_id,
                    metadata=RenewedMetadata(stripe_invoice_id=stripe_invoice_id, amount=amount_paid),
                )

    log_webhook_event(
        "user_invoice_paid",
        user_id=sub.user_id, subscription_id=sub.id, stripe_invoice_id=stripe_invoice_id,
        amount=amount_paid, duplicate=bool(already_recorded),
    )
    return "noop" if already_recorded else "processed"


def handle_invoice_payment_failed(invoice: Any, event: Any, db: Session) -> str:
    """invoice.payment_failed - one failed payment attempt"""
    subscription_id = _invoice_subscription_id(invoice)
    target = resolve_subscription_target(subscription_id, db)
    if target is None:
        log_webhook_event(
            "invoice_not_tracked",
            stripe_invoice_id=get_stripe_value(invoice, "id"), stripe_subscription_id=subscription_id,
        )
        return "ignored"

    if isinstance(target, OrgScoped):
        sub = target.subscription
        with atomic(db):
            sub.status = SubscriptionStatus.PAST_DUE
        log_webhook_event("org_invoice_failed", level=logging.WARNING, org_id=sub.org_id, stripe_subscription_id=subscription_id)
        return "processed"

    sub = target.subscription
    amount_due = get_stripe_value(invoice, "amount_due")
    with atomic(db):
        sub.status = UserSubscriptionStatus.PAST_DUE
        if amount_due is not None:
            create_invoice(
                sub.user_id, db,
                subscription_id=sub.id,
                plan_name=sub.plan.name,
                amount=int(amount_due),
                total_amount=int(amount_due),
                payment_status=PaymentStatus.FAILED,
                stripe_invoice_id=get_stripe_value(invoice, "id"),
                stripe_payment_intent_id=get_stripe_id(get_stripe_value(invoice, "payment_intent")),
            )

    log_webhook_event(
        "user_invoice_failed", logging.WARNING,
        user_id=sub.user_id, subscription_id=sub.id,
        stripe_invoice_id=get_stripe_value(invoice, "id"), amount_due=amount_due,
    )
    return "processed"


EVENT_HANDLERS: Dict[str, Callable[[Any, Any, Session], str]] = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_upserted,
    "customer.subscription.updated": handle_subscription_upserted,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_paid,
    "invoice.paid": handle_invoice_paid,
    "invoice.payment_failed": handle_invoice_payment_failed,
}
