"""Course model"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone
from app.models.base import Base, generate_id


class Course(Base):
    """Purchasable course (catalog fields beyond pricing live elsewhere)"""
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=generate_id)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    price = Column(Integer, nullable=False, default=0)  # cents
    stripe_price_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
