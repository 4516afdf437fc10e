"""Stripe gateway client - every call to the Stripe API goes through this module"""
import logging
import stripe
from stripe import SignatureVerificationError, StripeError
from typing import Any, Dict, Optional, Tuple
from datetime import datetime, timezone
from urllib.parse import urlencode
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.user import User

logger = logging.getLogger(__name__)

# Configure Stripe
stripe.api_key = settings.STRIPE_SECRET_KEY

# ============================================================================
# STRIPE OBJECT ACCESS HELPERS
# ============================================================================

def get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    # Plain dict payloads (tests, raw event JSON)
    if isinstance(obj, dict):
        value = obj.get(key, default)
        return default if value is None else value
    try:
        value = obj[key]
        if value is not None:
            return value
    except (KeyError, TypeError, IndexError):
        pass
    value = getattr(obj, key, None)
    return default if value is None else value


def get_stripe_id(value: Any) -> Optional[str]:
    """Return the id of an expandable field (either an id string or an expanded object)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return get_stripe_value(value, "id")


def to_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe unix timestamp to an aware UTC datetime."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc)


def _first_item(stripe_sub: Any):
    items = get_stripe_value(stripe_sub, "items")
    data = get_stripe_value(items, "data") or []
    return data[0] if data else None


def get_subscription_period(stripe_sub: Any) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Current period bounds of a subscription.

    Newer API versions report the period on the subscription items instead of
    the subscription itself, so fall back to the first item.
    """
    start_ts = get_stripe_value(stripe_sub, "current_period_start")
    end_ts = get_stripe_value(stripe_sub, "current_period_end")
    if not (start_ts and end_ts):
        item = _first_item(stripe_sub)
        start_ts = start_ts or get_stripe_value(item, "current_period_start")
        end_ts = end_ts or get_stripe_value(item, "current_period_end")
    return to_datetime(start_ts), to_datetime(end_ts)


def get_subscription_price_id(stripe_sub: Any) -> Optional[str]:
    """Price id of the first subscription item, if any."""
    item = _first_item(stripe_sub)
    return get_stripe_id(get_stripe_value(item, "price"))


def build_redirect_url(path: str, **query) -> str:
    """Absolute URL on the public frontend for checkout redirects."""
    base = settings.FRONTEND_URL.rstrip("/")
    url = f"{base}{path}"
    if query:
        url = f"{url}?{urlencode(query)}"
    return url

# ============================================================================
# WEBHOOK VERIFICATION
# ============================================================================

def construct_event(payload: bytes, sig_header: str, secret: str):
    """Verify the signature of a raw webhook body and parse it into an Event.

    Raises:
        ValueError: For an unparseable payload
        SignatureVerificationError: For a signature that does not match
    """
    return stripe.Webhook.construct_event(payload, sig_header, secret)

# ============================================================================
# CUSTOMERS
# ============================================================================

def get_or_create_customer_id(user: User, db: Session) -> str:
    """Return the user's Stripe customer id, creating the customer on first checkout.

    The id is persisted back on the user so subsequent checkouts reuse it.
    """
    if user.stripe_customer_id:
        return user.stripe_customer_id

    customer = stripe.Customer.create(
        email=user.email,
        name=user.display_name,
        metadata={"userId": user.id}
    )

    user.stripe_customer_id = customer.id
    db.commit()

    logger.info(f"Created Stripe customer {customer.id} for user {user.id}")
    return customer.id

# ============================================================================
# CHECKOUT
# ============================================================================

def create_checkout_session(
    customer_id: str,
    price_id: str,
    mode: str,
    metadata: Dict[str, str],
    success_url: str,
    cancel_url: str,
    subscription_metadata: Optional[Dict[str, str]] = None
) -> Dict[str, Optional[str]]:
    """Create a Checkout Session for one line item.

    Args:
        customer_id: Stripe customer the session is bound to
        price_id: Stripe price for the single line item
        mode: 'payment' for course purchases, 'subscription' for plans
        metadata: Linkage back to domain rows, echoed on checkout.session.completed
        success_url: Redirect after payment
        cancel_url: Redirect when the user abandons checkout
        subscription_metadata: Copied onto the created subscription (subscription mode only)

    Returns:
        Dict with session 'id' and hosted 'url'
    """
    checkout_params = {
        "customer": customer_id,
        "line_items": [{"price": price_id, "quantity": 1}],
        "mode": mode,
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": {k: str(v) for k, v in metadata.items()},
    }
    if mode == "subscription" and subscription_metadata:
        checkout_params["subscription_data"] = {
            "metadata": {k: str(v) for k, v in subscription_metadata.items()}
        }

    session = stripe.checkout.Session.create(**checkout_params)
    return {"id": session.id, "url": session.url}

# ============================================================================
# SUBSCRIPTIONS
# ============================================================================

def retrieve_subscription(subscription_id: str):
    """Fetch the live subscription (webhook payloads can be stale or thin)."""
    return stripe.Subscription.retrieve(subscription_id)


def update_subscription(subscription_id: str, **params):
    return stripe.Subscription.modify(subscription_id, **params)


def cancel_subscription(subscription_id: str):
    """Cancel a subscription immediately."""
    return stripe.Subscription.cancel(subscription_id)

