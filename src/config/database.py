"""Database configuration using Pydantic Settings.

Supports PostgreSQL (production) and SQLite (development/testing).
Configuration is loaded from environment variables with sensible defaults.
"""

import ssl
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """
    Database configuration settings.

    All settings can be overridden via environment variables with DB_ prefix.

    Example environment variables:
        DB_DRIVER=postgresql+asyncpg
        DB_HOST=localhost
        DB_NAME=adops
        DB_USER=adops
        DB_PASSWORD=secret
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database driver: postgresql+asyncpg (production) or sqlite+aiosqlite (dev)
    driver: str = Field(
        default="sqlite+aiosqlite",
        description="Database driver (postgresql+asyncpg or sqlite+aiosqlite)"
    )

    # PostgreSQL settings
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="adops", description="Database name")
    user: str = Field(default="", description="Database user")
    password: str = Field(default="", description="Database password")

    # SQLite settings (for development/testing)
    sqlite_path: Path = Field(
        default=Path("data/adops.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings
    pool_size: int = Field(default=10, ge=1, le=100, description="Connections kept in the pool")
    max_overflow: int = Field(default=20, ge=0, le=100, description="Max connections above pool_size")
    pool_timeout: int = Field(default=30, ge=1, description="Seconds to wait for a pooled connection")
    pool_recycle: int = Field(default=1800, ge=60, description="Seconds after which a connection is recycled")
    pool_pre_ping: bool = Field(default=True, description="Test connections before using them")

    # SSL settings (PostgreSQL production)
    ssl_mode: str = Field(
        default="prefer",
        description="SSL mode: disable, prefer, require, verify-full"
    )
    ssl_ca_cert: Optional[str] = Field(default=None, description="CA certificate for verify-full")

    # Query settings
    echo_sql: bool = Field(default=False, description="Log all SQL statements (for debugging)")
    query_timeout: int = Field(default=30, ge=1, description="Default query timeout in seconds")

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite."""
        return "sqlite" in self.driver.lower()

    @computed_field
    @property
    def is_postgres(self) -> bool:
        """Check if using PostgreSQL."""
        return "postgres" in self.driver.lower()

    @computed_field
    @property
    def async_url(self) -> str:
        """Async database URL built from the driver and connection fields."""
        if self.is_sqlite:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path.absolute()}"

        auth = ""
        if self.user:
            auth = self.user
            if self.password:
                auth += f":{self.password}"
            auth += "@"

        return f"{self.driver}://{auth}{self.host}:{self.port}/{self.name}"

    def get_connect_args(self) -> dict:
        """
        Get database-specific connection arguments.

        Returns:
            Dictionary of connection arguments for SQLAlchemy.
        """
        if self.is_sqlite:
            return {
                "check_same_thread": False,
                "timeout": self.query_timeout,
            }

        args = {"command_timeout": self.query_timeout}
        ssl_context = self._build_ssl_context()
        if ssl_context is not None:
            args["ssl"] = ssl_context
        return args

    def _build_ssl_context(self) -> Optional[ssl.SSLContext]:
        if self.ssl_mode == "disable":
            return None

        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
        if self.ssl_mode == "verify-full":
            if self.ssl_ca_cert:
                context.load_verify_locations(self.ssl_ca_cert)
            return context
        if self.ssl_mode == "require":
            return context

        # prefer - encrypt without strict verification
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """
    Get cached database settings instance.

    Returns:
        DatabaseSettings: Cached settings loaded from environment.
    """
    return DatabaseSettings()
