"""
BI Portal Access Engine

Subscription and access control for a multi-tenant business-intelligence portal.
Resolves roles and billing subscriptions into route-level access decisions,
per-feature entitlements and the trial/grace-period UI states shown to users.
"""

__version__ = "1.0.0"
__author__ = "BI Portal Team"
