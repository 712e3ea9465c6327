"""Configuration module for the ad-ops admin service."""

from .database import DatabaseSettings, get_database_settings
from .settings import (
    AuthSettings,
    RBACSettings,
    Settings,
    get_rbac_settings,
    get_settings,
)

__all__ = [
    "AuthSettings",
    "DatabaseSettings",
    "get_database_settings",
    "RBACSettings",
    "get_rbac_settings",
    "Settings",
    "get_settings",
]
