"""Pytest configuration and fixtures for test suite."""

import os
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import select

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_DRIVER", "sqlite+aiosqlite")
os.environ.setdefault("JWT_SECRET", "test-signing-secret-0123456789abcdef0123456789")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from config.database import DatabaseSettings  # noqa: E402
from config.settings import get_rbac_settings, get_settings  # noqa: E402
from database.async_engine import create_engine, get_session_factory, init_database  # noqa: E402
from database.models import Role, User  # noqa: E402
from rbac.cache import CacheConfig, PermissionCache, reset_permission_cache  # noqa: E402
from rbac.context import Principal, RoleInfo  # noqa: E402
from rbac.jwt import reset_jwt_secret  # noqa: E402
from rbac.seed import seed_rbac  # noqa: E402


def _reset_module_globals():
    """Reset module-level singletons to ensure clean state."""
    import database.async_engine as module
    module._async_engine = None
    module._async_session_factory = None
    reset_permission_cache()
    reset_jwt_secret()
    get_settings.cache_clear()
    get_rbac_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset singletons before and after each test."""
    _reset_module_globals()
    yield
    _reset_module_globals()


# =============================================================================
# CLOCK
# =============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def permission_cache(clock):
    """Permission cache with a 300s TTL driven by the fake clock."""
    return PermissionCache(CacheConfig(ttl_seconds=300, maxsize=100), clock=clock)


# =============================================================================
# DATABASE
# =============================================================================

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed SQLite engine with the full schema."""
    settings = DatabaseSettings(sqlite_path=tmp_path / "rbac.db")
    engine = create_engine(settings)
    await init_database(settings, engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory(db_engine)


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Seeded catalog plus one user per system role.

    Returns a dict of role name -> User.
    """
    async with session_factory() as session:
        await seed_rbac(session)

    users = {}
    async with session_factory() as session:
        roles = {r.name: r for r in (await session.execute(select(Role))).scalars().all()}
        for name in ("super_admin", "admin", "manager", "editor", "viewer"):
            user = User(username=f"{name}_user", email=f"{name}@example.com", role_id=roles[name].id)
            session.add(user)
            users[name] = user
        await session.commit()
    return users


@pytest_asyncio.fixture
async def make_user(session_factory):
    """Factory creating a user, optionally under a new custom role."""

    async def _make(username, role_id=None, level=None, role_active=True, is_active=True):
        async with session_factory() as session:
            if level is not None:
                role = Role(
                    name=f"{username}_role",
                    display_name=f"{username} role",
                    level=level,
                    is_active=role_active,
                )
                session.add(role)
                await session.flush()
                role_id = role.id
            user = User(username=username, role_id=role_id, is_active=is_active)
            session.add(user)
            await session.commit()
            return user

    return _make


def principal_for(user, role_name, level, is_active=True, role_id=None):
    return Principal(
        id=user.id if hasattr(user, "id") else user,
        username=getattr(user, "username", None),
        role=RoleInfo(
            id=role_id if role_id is not None else getattr(user, "role_id", None),
            name=role_name,
            level=level,
            is_active=is_active,
        ),
    )


@pytest.fixture
def make_principal():
    """Build a Principal without touching the database."""
    return principal_for


@pytest.fixture
def principals(seeded):
    """Principals matching the seeded users."""
    levels = {"super_admin": 10, "admin": 8, "manager": 5, "editor": 3, "viewer": 1}
    return {
        name: principal_for(user, name, levels[name])
        for name, user in seeded.items()
    }
