"""
Per-company overrides of plan features and quotas.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow


class CompanyCustomFeature(Base):
    __tablename__ = "company_custom_features"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    feature_key = Column(String(50), nullable=False)
    is_enabled = Column(Boolean, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    company = relationship("Company", back_populates="custom_features")

    __table_args__ = (
        UniqueConstraint("company_id", "feature_key", name="uq_company_features_company_feature"),
    )


class CompanyCustomLimit(Base):
    """Replaces the plan's quota for one company; NULL means unlimited."""

    __tablename__ = "company_custom_limits"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    limit_type = Column(String(20), nullable=False)
    limit_value = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    company = relationship("Company", back_populates="custom_limits")

    __table_args__ = (
        UniqueConstraint("company_id", "limit_type", name="uq_company_limits_company_type"),
    )
