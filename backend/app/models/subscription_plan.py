"""SubscriptionPlan model"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from datetime import datetime, timezone
from app.models.base import Base, generate_id
from app.models.enums import BillingCycle


class SubscriptionPlan(Base):
    """Per-user subscription plan offered in the catalog"""
    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    price_monthly = Column(Integer, nullable=False, default=0)  # cents
    price_yearly = Column(Integer, nullable=False, default=0)  # cents
    trial_days = Column(Integer, nullable=False, default=0)
    stripe_price_id_monthly = Column(String(255), nullable=True)
    stripe_price_id_yearly = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    def price_for(self, billing_cycle: BillingCycle) -> int:
        return self.price_yearly if billing_cycle == BillingCycle.YEARLY else self.price_monthly

    def stripe_price_id_for(self, billing_cycle: BillingCycle):
        if billing_cycle == BillingCycle.YEARLY:
            return self.stripe_price_id_yearly
        return self.stripe_price_id_monthly
