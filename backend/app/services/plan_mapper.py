"""Translation of Stripe identifiers and statuses into domain values.

Everything here is pure: no database, no network, no logging. Callers decide
whether a miss is worth a log line.
"""
from typing import Dict, Optional, Union

from app.core.config import settings
from app.models.enums import BillingCycle, PlanCode, SubscriptionStatus, UserSubscriptionStatus


def _price_settings() -> Dict[tuple, str]:
    """(plan_code, billing_cycle) -> configured Stripe price id"""
    return {
        (PlanCode.PERSONAL, BillingCycle.MONTHLY): settings.STRIPE_PRICE_PERSONAL_MONTHLY,
        (PlanCode.PERSONAL, BillingCycle.YEARLY): settings.STRIPE_PRICE_PERSONAL_YEARLY,
        (PlanCode.TEAM, BillingCycle.MONTHLY): settings.STRIPE_PRICE_TEAM_MONTHLY,
        (PlanCode.TEAM, BillingCycle.YEARLY): settings.STRIPE_PRICE_TEAM_YEARLY,
        (PlanCode.ENTERPRISE, BillingCycle.MONTHLY): settings.STRIPE_PRICE_ENTERPRISE_MONTHLY,
        (PlanCode.ENTERPRISE, BillingCycle.YEARLY): settings.STRIPE_PRICE_ENTERPRISE_YEARLY,
    }


def coerce_plan_code(value: Union[str, PlanCode, None]) -> Optional[PlanCode]:
    """Parse a plan code asserted by a caller (e.g. checkout metadata); None if unknown."""
    if value is None:
        return None
    if isinstance(value, PlanCode):
        return value
    try:
        return PlanCode(str(value).strip().upper())
    except ValueError:
        return None


def lookup_plan_code(price_id: Optional[str]) -> Optional[PlanCode]:
    """Plan code for a configured Stripe price id, or None when the table has no entry."""
    if not price_id:
        return None
    for (plan_code, _cycle), configured in _price_settings().items():
        if configured and configured == price_id:
            return plan_code
    return None


def map_price_to_plan_code(
    price_id: Optional[str],
    fallback: Union[str, PlanCode, None] = None
) -> Optional[PlanCode]:
    """Map a Stripe price id to a plan code.

    Falls back to the caller-supplied plan code when the price is not in the
    table, so a price added in Stripe but not yet configured here degrades to
    "trust the checkout metadata" instead of failing.
    """
    return lookup_plan_code(price_id) or coerce_plan_code(fallback)


def get_price_id(plan_code: Union[str, PlanCode], billing_cycle: Union[str, BillingCycle]) -> Optional[str]:
    """Configured Stripe price id for a plan and billing cycle, or None."""
    code = coerce_plan_code(plan_code)
    if code is None:
        return None
    price_id = _price_settings().get((code, BillingCycle.parse(billing_cycle)))
    return price_id or None

# ============================================================================
# STATUS MAPPING
# ============================================================================

# One table for both subscription models; the legacy model projects from it.
GATEWAY_STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.EXPIRED,
    "canceled": SubscriptionStatus.CANCELLED,
    "incomplete": SubscriptionStatus.INCOMPLETE,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
    "paused": SubscriptionStatus.PAUSED,
}

_LEGACY_PROJECTION: Dict[SubscriptionStatus, UserSubscriptionStatus] = {
    SubscriptionStatus.ACTIVE: UserSubscriptionStatus.ACTIVE,
    SubscriptionStatus.TRIALING: UserSubscriptionStatus.TRIAL,
    SubscriptionStatus.PAST_DUE: UserSubscriptionStatus.PAST_DUE,
    SubscriptionStatus.CANCELLED: UserSubscriptionStatus.CANCELLED,
    SubscriptionStatus.EXPIRED: UserSubscriptionStatus.EXPIRED,
    # no access until Stripe reports the first payment
    SubscriptionStatus.INCOMPLETE: UserSubscriptionStatus.PAST_DUE,
    SubscriptionStatus.PAUSED: UserSubscriptionStatus.PAST_DUE,
}


def map_gateway_status(status: Optional[str]) -> SubscriptionStatus:
    """Stripe subscription status -> organization subscription status (unknown -> Incomplete)"""
    return GATEWAY_STATUS_MAP.get((status or "").lower(), SubscriptionStatus.INCOMPLETE)


def map_gateway_status_for_user(status: Optional[str]) -> UserSubscriptionStatus:
    """Stripe subscription status -> legacy per-user subscription status"""
    return _LEGACY_PROJECTION[map_gateway_status(status)]
