"""Subscription store - persistence for org and per-user subscriptions, history and invoices.

Functions here only stage changes on the session (add/flush). Committing is
the caller's job so that multi-row writes can share one transaction.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from app.models.enums import (
    ACTIVE_USER_SUBSCRIPTION_STATUSES, PaymentStatus, SubscriptionAction,
    SubscriptionStatus, UserSubscriptionStatus
)
from app.models.invoice import Invoice
from app.models.organization import Organization
from app.models.subscription import Subscription
from app.models.subscription_history import SubscriptionHistory
from app.models.user_subscription import UserSubscription
from app.schemas.billing import CancelledMetadata, HistoryMetadata, history_metadata_adapter

logger = logging.getLogger(__name__)

INVOICE_NUMBER_ATTEMPTS = 5

# ============================================================================
# SUBSCRIPTION TARGET RESOLUTION
# ============================================================================

@dataclass(frozen=True)
class OrgScoped:
    subscription: Subscription


@dataclass(frozen=True)
class UserScoped:
    subscription: UserSubscription


SubscriptionTarget = Union[OrgScoped, UserScoped]


def resolve_subscription_target(stripe_subscription_id: Optional[str], db: Session) -> Optional[SubscriptionTarget]:
    """Find the local row for a Stripe subscription id.

    The organization table is checked first; a correctly configured system
    never references the same Stripe subscription from both tables.
    """
    if not stripe_subscription_id:
        return None

    org_sub = get_org_subscription_by_stripe_id(stripe_subscription_id, db)
    if org_sub:
        return OrgScoped(org_sub)

    user_sub = get_user_subscription_by_stripe_id(stripe_subscription_id, db)
    if user_sub:
        return UserScoped(user_sub)

    return None

# ============================================================================
# ORGANIZATION SUBSCRIPTIONS
# ============================================================================

def get_or_create_organization(user_id: str, db: Session, name: Optional[str] = None) -> Organization:
    """Return the organization owned by the user, creating it on first use."""
    org = db.query(Organization).filter(Organization.owner_user_id == user_id).first()
    if org:
        return org

    org = Organization(owner_user_id=user_id, name=name or "My Organization")
    db.add(org)
    db.flush()
    logger.info(f"Created organization {org.id} for user {user_id}")
    return org


def get_org_subscription(org_id: str, db: Session) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.org_id == org_id).first()


def get_org_subscription_by_stripe_id(stripe_subscription_id: str, db: Session) -> Optional[Subscription]:
    return db.query(Subscription).filter(
        Subscription.stripe_subscription_id == stripe_subscription_id
    ).first()


def upsert_org_subscription(
    org_id: str,
    db: Session,
    *,
    plan_code: str,
    status: SubscriptionStatus,
    current_period_start: Optional[datetime],
    current_period_end: Optional[datetime],
    cancel_at_period_end: bool,
    stripe_customer_id: Optional[str],
    stripe_subscription_id: Optional[str],
    stripe_price_id: Optional[str]
) -> Subscription:
    """Create or overwrite the single subscription row of an organization."""
    sub = get_org_subscription(org_id, db)
    if not sub:
        sub = Subscription(org_id=org_id)
        db.add(sub)
        logger.info(f"Creating subscription record for org {org_id} ({stripe_subscription_id})")
    else:
        logger.info(f"Updating subscription record for org {org_id} ({stripe_subscription_id})")

    sub.plan_code = plan_code
    sub.status = status
    sub.current_period_start = current_period_start
    sub.current_period_end = current_period_end
    sub.cancel_at_period_end = bool(cancel_at_period_end)
    sub.stripe_customer_id = stripe_customer_id
    sub.stripe_subscription_id = stripe_subscription_id
    sub.stripe_price_id = stripe_price_id
    db.flush()
    return sub

# ============================================================================
# PER-USER SUBSCRIPTIONS
# ============================================================================

def get_user_subscription_by_stripe_id(stripe_subscription_id: str, db: Session) -> Optional[UserSubscription]:
    return db.query(UserSubscription).filter(
        UserSubscription.stripe_subscription_id == stripe_subscription_id
    ).first()


def get_active_user_subscription(user_id: str, db: Session) -> Optional[UserSubscription]:
    """The user's Active or Trial subscription, if any."""
    return db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.status.in_(ACTIVE_USER_SUBSCRIPTION_STATUSES)
    ).first()


def get_latest_user_subscription(user_id: str, db: Session) -> Optional[UserSubscription]:
    return db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id
    ).order_by(UserSubscription.created_at.desc()).first()


def get_other_active_user_subscription(
    user_id: str,
    subscription_id: str,
    db: Session
) -> Optional[UserSubscription]:
    """Active/Trial subscription of the user other than the given one, if any"""
    return db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.id != subscription_id,
        UserSubscription.status.in_(ACTIVE_USER_SUBSCRIPTION_STATUSES)
    ).first()


def cancel_active_user_subscriptions(user_id: str, db: Session, now: Optional[datetime] = None) -> List[UserSubscription]:
    """Cancel every Active/Trial subscription of a user, recording why in the history.

    Used right before a replacement subscription is created, in the same
    transaction, so the user never ends up with two active rows.
    """
    now = now or datetime.now(timezone.utc)
    active = db.query(UserSubscription).filter(
        UserSubscription.user_id == user_id,
        UserSubscription.status.in_(ACTIVE_USER_SUBSCRIPTION_STATUSES)
    ).all()

    for sub in active:
        sub.status = UserSubscriptionStatus.CANCELLED
        sub.auto_renew = False
        sub.cancelled_at = now
        append_history(
            user_id=user_id,
            subscription_id=sub.id,
            action=SubscriptionAction.CANCELLED,
            db=db,
            old_plan_id=sub.plan_id,
            metadata=CancelledMetadata(reason="superseded", cancelled_by="gateway")
        )

    if active:
        db.flush()
    return active


def create_user_subscription(user_id: str, db: Session, **fields) -> UserSubscription:
    sub = UserSubscription(user_id=user_id, **fields)
    db.add(sub)
    db.flush()
    return sub

# ============================================================================
# HISTORY
# ============================================================================

def append_history(
    user_id: str,
    subscription_id: str,
    action: SubscriptionAction,
    db: Session,
    old_plan_id: Optional[str] = None,
    new_plan_id: Optional[str] = None,
    metadata: Union[HistoryMetadata, dict, None] = None
) -> SubscriptionHistory:
    """Append an audit entry. Metadata must match one of the known shapes.

    Raises:
        pydantic.ValidationError: For metadata that matches no known shape
    """
    stored = None
    if metadata is not None:
        if isinstance(metadata, dict):
            metadata = history_metadata_adapter.validate_python(metadata)
        stored = history_metadata_adapter.dump_python(metadata, mode="json")

    entry = SubscriptionHistory(
        user_id=user_id,
        subscription_id=subscription_id,
        action=action,
        old_plan_id=old_plan_id,
        new_plan_id=new_plan_id,
        event_metadata=stored
    )
    db.add(entry)
    return entry

# ============================================================================
# INVOICES
# ============================================================================

def generate_invoice_number(db: Session, now: Optional[datetime] = None) -> str:
    """Random invoice number, checked against existing rows.

    The unique constraint on invoices.invoice_number is the final guard; the
    lookup only keeps collisions from surfacing as integrity errors.
    """
    now = now or datetime.now(timezone.utc)
    for _ in range(INVOICE_NUMBER_ATTEMPTS):
        candidate = f"INV-{now:%Y%m%d}-{secrets.token_hex(4).upper()}"
        exists = db.query(Invoice.id).filter(Invoice.invoice_number == candidate).first()
        if not exists:
            return candidate
    raise RuntimeError("Could not generate a unique invoice number")


def create_invoice(
    user_id: str,
    db: Session,
    *,
    subscription_id: Optional[str],
    plan_name: str,
    amount: int,
    total_amount: int,
    payment_status: PaymentStatus,
    payment_date: Optional[datetime] = None,
    stripe_invoice_id: Optional[str] = None,
    stripe_payment_intent_id: Optional[str] = None
) -> Invoice:
    invoice = Invoice(
        invoice_number=generate_invoice_number(db),
        user_id=user_id,
        subscription_id=subscription_id,
        plan_name=plan_name,
        amount=amount,
        total_amount=total_amount,
        payment_status=payment_status,
        payment_date=payment_date,
        stripe_invoice_id=stripe_invoice_id,
        stripe_payment_intent_id=stripe_payment_intent_id
    )
    db.add(invoice)
    db.flush()
    return invoice


def list_user_invoices(user_id: str, db: Session) -> List[Invoice]:
    return db.query(Invoice).filter(Invoice.user_id == user_id).order_by(Invoice.created_at.desc()).all()
