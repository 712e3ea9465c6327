"""
Database layer for the ad-ops admin service.

Provides SQLAlchemy ORM models and the async engine/session helpers.
"""

from .models import (
    Base,
    AuditAction,
    Module,
    Permission,
    Role,
    RolePermission,
    User,
    PermissionAuditLog,
    OwnedMixin,
    Brand,
    Campaign,
    BusinessManager,
    Card,
    FacebookAccount,
    FacebookPage,
)
from .async_engine import (
    create_engine,
    get_async_engine,
    get_async_session,
    get_async_session_factory,
    get_session_factory,
    init_database,
    close_database,
)

__all__ = [
    "Base",
    "AuditAction",
    "Module",
    "Permission",
    "Role",
    "RolePermission",
    "User",
    "PermissionAuditLog",
    "OwnedMixin",
    "Brand",
    "Campaign",
    "BusinessManager",
    "Card",
    "FacebookAccount",
    "FacebookPage",
    "create_engine",
    "get_async_engine",
    "get_async_session",
    "get_async_session_factory",
    "get_session_factory",
    "init_database",
    "close_database",
]
