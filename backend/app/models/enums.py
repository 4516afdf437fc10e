"""Status and action enums stored on billing models"""
import enum

from sqlalchemy import Enum as SAEnum


class EnrollmentStatus(str, enum.Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    CANCELLED = "Cancelled"


class UserSubscriptionStatus(str, enum.Enum):
    """Legacy per-user subscription status"""
    TRIAL = "Trial"
    ACTIVE = "Active"
    PAST_DUE = "PastDue"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"


class SubscriptionStatus(str, enum.Enum):
    """Organization subscription status"""
    ACTIVE = "Active"
    TRIALING = "Trialing"
    PAST_DUE = "PastDue"
    CANCELLED = "Cancelled"
    EXPIRED = "Expired"
    INCOMPLETE = "Incomplete"
    PAUSED = "Paused"


class BillingCycle(str, enum.Enum):
    MONTHLY = "Monthly"
    YEARLY = "Yearly"

    @classmethod
    def parse(cls, value) -> "BillingCycle":
        """Accept 'monthly'/'yearly' as sent in checkout metadata"""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(f"Unknown billing cycle: {value!r}")


class PaymentStatus(str, enum.Enum):
    PAID = "Paid"
    FAILED = "Failed"


class SubscriptionAction(str, enum.Enum):
    CREATED = "Created"
    UPGRADED = "Upgraded"
    DOWNGRADED = "Downgraded"
    CANCELLED = "Cancelled"
    REACTIVATED = "Reactivated"
    RENEWED = "Renewed"
    EXPIRED = "Expired"


class PlanCode(str, enum.Enum):
    """Organization plan codes"""
    PERSONAL = "PERSONAL"
    TEAM = "TEAM"
    ENTERPRISE = "ENTERPRISE"


ACTIVE_USER_SUBSCRIPTION_STATUSES = (UserSubscriptionStatus.ACTIVE, UserSubscriptionStatus.TRIAL)


def enum_column_type(enum_cls):
    """SQLAlchemy Enum type storing the member values as plain strings"""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
