"""Application settings using Pydantic Settings.

Centralized configuration for the ad-ops admin service.

SECURITY: Production requires the following environment variables:
- JWT_SECRET: JWT signing key (min 32 chars)

Generate secrets with: python -c "import secrets; print(secrets.token_hex(32))"
"""

import logging
import sys
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RBACSettings(BaseSettings):
    """Permission resolution and cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RBAC_",
        extra="ignore",
    )

    # Permission cache
    permission_cache_ttl_seconds: int = Field(
        default=300,
        ge=0,
        description="Seconds a resolved permission set stays cached (0 disables caching)"
    )
    permission_cache_maxsize: int = Field(
        default=1000,
        ge=1,
        description="Maximum number of cached users per process"
    )

    # Audit log paging
    audit_page_size_default: int = Field(default=50, ge=1, description="Default audit page size")
    audit_page_size_max: int = Field(default=100, ge=1, description="Maximum audit page size")


class AuthSettings(BaseSettings):
    """Bearer token verification settings."""

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret: Optional[str] = Field(default=None, description="HS256 signing secret")
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    issuer: Optional[str] = Field(default=None, description="Expected iss claim")
    audience: Optional[str] = Field(default=None, description="Expected aud claim")
    access_token_expire_minutes: int = Field(default=480, ge=1, description="Access token lifetime")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application info
    name: str = Field(default="Ad Ops Admin", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Root log level")

    # API settings
    api_prefix: str = Field(default="/api", description="Prefix for all API routes")
    cors_origins: list = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    # Nested settings (loaded separately)
    @property
    def rbac(self) -> RBACSettings:
        return RBACSettings()

    @property
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")

    def validate_production_security(self) -> List[str]:
        """
        Validate security requirements for production.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.is_production:
            return errors

        secret = self.auth.secret
        if not secret:
            errors.append(
                "JWT_SECRET: Required in production. "
                "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        elif len(secret) < 32:
            errors.append("JWT_SECRET: Must be at least 32 characters")

        if self.debug:
            errors.append("APP_DEBUG: Must be False in production")

        return errors


# =============================================================================
# STARTUP VALIDATION
# =============================================================================

class StartupSecurityError(Exception):
    """Raised when security validation fails at startup."""
    pass


def validate_startup_security(settings: Settings, exit_on_failure: bool = True) -> bool:
    """
    Validate security settings at application startup.

    Args:
        settings: Application settings instance
        exit_on_failure: If True, exit the process on failure (default)

    Returns:
        True if validation passes

    Raises:
        StartupSecurityError: If validation fails and exit_on_failure is False
    """
    errors = settings.validate_production_security()

    if not errors:
        if settings.is_production:
            logger.info("Production security validation PASSED")
        return True

    error_msg = "Security configuration errors:\n" + "\n".join(
        f"  {i}. {err}" for i, err in enumerate(errors, 1)
    )
    logger.critical(error_msg)

    if exit_on_failure:
        print(error_msg, file=sys.stderr)
        sys.exit(1)
    raise StartupSecurityError(error_msg)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Settings: Cached settings loaded from environment.
    """
    return Settings()


@lru_cache
def get_rbac_settings() -> RBACSettings:
    """Get cached RBAC settings."""
    return RBACSettings()
