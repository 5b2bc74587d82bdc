"""
User and role assignment models.
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, new_id, utcnow


class User(Base):
    """Portal user belonging to at most one company."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="users")
    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan", lazy="selectin")
    subscription = relationship("Subscription", back_populates="user", uselist=False, lazy="selectin")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class UserRole(Base):
    """
    One persisted role assignment.

    Stored values are ``user``, ``admin`` and ``master_admin`` (legacy) or
    ``viewer``, ``admin`` and ``master-admin``; the engine accepts both.
    """

    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(32), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user = relationship("User", back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        Index("ix_user_roles_role", "role"),
    )

    def __repr__(self):
        return f"<UserRole(user_id={self.user_id}, role='{self.role}')>"
