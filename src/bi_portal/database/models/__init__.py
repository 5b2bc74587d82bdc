"""
SQLAlchemy database models for the multi-tenant BI Portal.

Models:
- Company: Tenant owning users, dashboards and credentials
- User / UserRole: Portal users and their persisted role assignments
- Subscription: Billing state per billing owner
- SubscriptionPlan / PlanFeature / PlanLimit: Plan catalog
- CompanyCustomFeature / CompanyCustomLimit: Per-company overrides
- Dashboard / Credential: Resources counted against plan quotas
"""

from .base import Base
from .company import Company
from .user import User, UserRole
from .subscription import Subscription
from .plan import SubscriptionPlan, PlanFeature, PlanLimit
from .overrides import CompanyCustomFeature, CompanyCustomLimit
from .usage import Dashboard, Credential

__all__ = [
    "Base",
    "Company",
    "User",
    "UserRole",
    "Subscription",
    "SubscriptionPlan",
    "PlanFeature",
    "PlanLimit",
    "CompanyCustomFeature",
    "CompanyCustomLimit",
    "Dashboard",
    "Credential",
]
