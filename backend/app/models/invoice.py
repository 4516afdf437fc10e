"""Invoice model"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from datetime import datetime, timezone
from app.models.base import Base, generate_id
from app.models.enums import PaymentStatus, enum_column_type


class Invoice(Base):
    """One row per payment attempt on a per-user subscription"""
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=generate_id)
    invoice_number = Column(String(64), unique=True, nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    subscription_id = Column(String(36), ForeignKey("user_subscriptions.id"), nullable=True, index=True)
    plan_name = Column(String(255), nullable=False)
    amount = Column(Integer, nullable=False, default=0)  # cents
    total_amount = Column(Integer, nullable=False, default=0)  # cents
    payment_status = Column(enum_column_type(PaymentStatus), nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    stripe_invoice_id = Column(String(255), nullable=True, index=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
