"""SubscriptionHistory model"""
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base, generate_id
from app.models.enums import SubscriptionAction, enum_column_type


class SubscriptionHistory(Base):
    """Append-only audit trail for per-user subscriptions. Rows are never updated or deleted."""
    __tablename__ = "subscription_history"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(String(36), ForeignKey("user_subscriptions.id"), nullable=False, index=True)
    action = Column(enum_column_type(SubscriptionAction), nullable=False)
    old_plan_id = Column(String(36), nullable=True)
    new_plan_id = Column(String(36), nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)  # validated HistoryMetadata
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationship
    subscription = relationship("UserSubscription", back_populates="history")
