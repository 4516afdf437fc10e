"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from app.models.base import Base
from app.models.user import User
from app.models.course import Course
from app.models.enrollment import Enrollment
from app.models.organization import Organization
from app.models.subscription_plan import SubscriptionPlan
from app.models.user_subscription import UserSubscription
from app.models.subscription import Subscription
from app.models.subscription_history import SubscriptionHistory
from app.models.invoice import Invoice
from app.models.stripe_event import StripeEvent

# Export all for convenience
__all__ = [
    "Base", "User", "Course", "Enrollment", "Organization", "SubscriptionPlan",
    "UserSubscription", "Subscription", "SubscriptionHistory", "Invoice", "StripeEvent"
]
