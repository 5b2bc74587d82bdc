"""
Caching layer for the BI Portal.
"""

from .redis_cache import RoleCache, get_role_cache, reset_role_cache

__all__ = ["RoleCache", "get_role_cache", "reset_role_cache"]
