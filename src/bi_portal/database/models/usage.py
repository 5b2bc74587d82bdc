"""
Quota-counted resources. Only the columns needed for counting live here;
dashboard embedding and credential storage belong to other services.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey

from .base import Base, new_id, utcnow


class Dashboard(Base):
    __tablename__ = "dashboards"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Credential(Base):
    __tablename__ = "power_bi_credentials"

    id = Column(String(36), primary_key=True, default=new_id)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
