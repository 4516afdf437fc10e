"""User model"""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.models.base import Base, generate_id


class User(Base):
    """User accounts (owned by the auth provider; billing only reads and links customers)"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    stripe_customer_id = Column(String(255), unique=True, nullable=True, index=True)  # Stripe customer ID
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    enrollments = relationship("Enrollment", back_populates="user")
    user_subscriptions = relationship("UserSubscription", back_populates="user")

    @property
    def display_name(self) -> str:
        """Name sent to Stripe when creating a customer"""
        name = " ".join(part for part in (self.first_name, self.last_name) if part).strip()
        return name or self.email.split("@")[0]
