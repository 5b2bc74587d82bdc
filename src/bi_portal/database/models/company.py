"""
Company model - the tenant that owns dashboards, users and a subscription.
"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow


class Company(Base):
    """
    Tenant of the portal.

    The company's billing owner is one of its admins; users without a
    subscription of their own are covered by that owner's subscription.
    """

    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    cnpj = Column(String(20), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    users = relationship("User", back_populates="company", lazy="dynamic")
    custom_features = relationship("CompanyCustomFeature", back_populates="company",
                                   cascade="all, delete-orphan")
    custom_limits = relationship("CompanyCustomLimit", back_populates="company",
                                 cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Company(id={self.id}, name='{self.name}')>"
