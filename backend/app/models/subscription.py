"""Subscription model (organization-level)"""
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base, generate_id
from app.models.enums import SubscriptionStatus, enum_column_type


class Subscription(Base):
    """Stripe subscription owned by an organization; one row per organization"""
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=generate_id)
    org_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, unique=True, index=True)
    plan_code = Column(String(50), nullable=False)  # 'PERSONAL', 'TEAM', 'ENTERPRISE'
    status = Column(enum_column_type(SubscriptionStatus), nullable=False)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True, index=True)
    stripe_price_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    organization = relationship("Organization", back_populates="subscription")
