"""
Plan catalog models: plans, the features they unlock and their quotas.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from bi_portal.access.models import LimitKind, PlanDefinition

from .base import Base, new_id, utcnow


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True, default=new_id)
    plan_key = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    features = relationship("PlanFeature", back_populates="plan", cascade="all, delete-orphan", lazy="selectin")
    limits = relationship("PlanLimit", back_populates="plan", cascade="all, delete-orphan", lazy="selectin")

    def __repr__(self):
        return f"<SubscriptionPlan(plan_key='{self.plan_key}', name='{self.name}')>"

    def to_definition(self) -> PlanDefinition:
        """Convert to the engine's plan definition; unknown limit types are skipped."""
        limits = {}
        for row in self.limits:
            try:
                limits[LimitKind(row.limit_type)] = row.limit_value
            except ValueError:
                continue

        return PlanDefinition(
            key=self.plan_key,
            name=self.name,
            feature_keys=frozenset(f.feature_key for f in self.features if f.is_enabled),
            limits=limits,
        )


class PlanFeature(Base):
    __tablename__ = "plan_features"

    id = Column(String(36), primary_key=True, default=new_id)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    feature_key = Column(String(50), nullable=False)
    is_enabled = Column(Boolean, default=True, nullable=False)
    feature_description = Column(String(255), nullable=True)

    plan = relationship("SubscriptionPlan", back_populates="features")

    __table_args__ = (
        UniqueConstraint("plan_id", "feature_key", name="uq_plan_features_plan_feature"),
    )


class PlanLimit(Base):
    """Quota of a plan; a NULL value means unlimited."""

    __tablename__ = "plan_limits"

    id = Column(String(36), primary_key=True, default=new_id)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    limit_type = Column(String(20), nullable=False)
    limit_value = Column(Integer, nullable=True)

    plan = relationship("SubscriptionPlan", back_populates="limits")

    __table_args__ = (
        UniqueConstraint("plan_id", "limit_type", name="uq_plan_limits_plan_type"),
    )
