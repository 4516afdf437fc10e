"""UserSubscription model (legacy per-user subscriptions)"""
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base, generate_id
from app.models.enums import UserSubscriptionStatus, BillingCycle, enum_column_type


class UserSubscription(Base):
    """Per-user subscription record.

    At most one row per user may be Active or Trial; the webhook path cancels
    the previous one in the same transaction that creates a new one.
    """
    __tablename__ = "user_subscriptions"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id"), nullable=False, index=True)
    status = Column(enum_column_type(UserSubscriptionStatus), nullable=False)
    billing_cycle = Column(enum_column_type(BillingCycle), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=True)
    next_billing_date = Column(DateTime(timezone=True), nullable=True)
    auto_renew = Column(Boolean, default=True, nullable=False)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    user = relationship("User", back_populates="user_subscriptions")
    plan = relationship("SubscriptionPlan")
    history = relationship("SubscriptionHistory", back_populates="subscription", order_by="SubscriptionHistory.created_at")

    def __repr__(self):
        return f"<UserSubscription(id={self.id}, user_id={self.user_id}, plan_id={self.plan_id}, status={self.status})>"
