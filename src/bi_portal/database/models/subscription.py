"""
Subscription model - billing state written by payment webhooks, read by the
access engine.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from bi_portal.access.models import SubscriptionRecord

from .base import Base, new_id, utcnow


class Subscription(Base):
    """Billing subscription of a user (normally a company admin)."""

    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    plan = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="trialing")

    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    is_master_managed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="subscription")

    def __repr__(self):
        return f"<Subscription(user_id={self.user_id}, plan={self.plan}, status={self.status})>"

    def to_record(self) -> SubscriptionRecord:
        """Read-only view handed to the access engine."""
        return SubscriptionRecord(
            status=self.status,
            plan_key=self.plan,
            trial_ends_at=self.trial_ends_at,
            canceled_at=self.canceled_at,
            is_master_managed=bool(self.is_master_managed),
            created_at=self.created_at,
            user_id=self.user_id,
        )
