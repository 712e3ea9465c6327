"""
RBAC Database Seeding

Seeds modules, permissions and system roles. Safe to run repeatedly:
existing rows are updated in place, and role permission sets are only
filled in when a system role is first created so later edits survive.

Usage:
    python -m rbac.seed
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Module, Permission, Role, RolePermission

from .catalog import SYSTEM_PERMISSIONS, PermissionDefinition
from .modules import MODULES
from .ownership import ADMIN_LEVEL, SUPER_ADMIN_LEVEL
from .permissions import Action

logger = logging.getLogger(__name__)


# =============================================================================
# SYSTEM ROLES
# =============================================================================

_OPERATIONAL_CATEGORIES = {"operations", "assets", "billing"}


@dataclass(frozen=True)
class SystemRoleDefinition:
    """Definition of a seeded system role."""
    name: str
    display_name: str
    description: str
    level: int
    includes: Callable[[PermissionDefinition], bool]


SYSTEM_ROLES: List[SystemRoleDefinition] = [
    SystemRoleDefinition(
        name="super_admin",
        display_name="Super Admin",
        description="Full access including system role changes",
        level=SUPER_ADMIN_LEVEL,
        includes=lambda p: True,
    ),
    SystemRoleDefinition(
        name="admin",
        display_name="Admin",
        description="Full access to all records and settings",
        level=ADMIN_LEVEL,
        includes=lambda p: True,
    ),
    SystemRoleDefinition(
        name="manager",
        display_name="Manager",
        description="Manages own campaigns, assets and cards; runs reports",
        level=5,
        includes=lambda p: (
            p.category in _OPERATIONAL_CATEGORIES
            or p.category == "reporting"
            or p.name.module == "users" and p.name.action is Action.READ
        ),
    ),
    SystemRoleDefinition(
        name="editor",
        display_name="Editor",
        description="Creates and edits own campaigns and assets",
        level=3,
        includes=lambda p: (
            p.category in _OPERATIONAL_CATEGORIES
            and p.name.action in (Action.READ, Action.CREATE, Action.UPDATE)
            or p.name.module == "dashboard"
        ),
    ),
    SystemRoleDefinition(
        name="viewer",
        display_name="Viewer",
        description="Read-only access to own records",
        level=1,
        includes=lambda p: (
            p.category != "administration"
            and p.name.action in (Action.READ, Action.VIEW)
        ),
    ),
]


# =============================================================================
# SEEDING
# =============================================================================

async def seed_modules(session: AsyncSession) -> Dict[str, Module]:
    existing = {
        m.name: m for m in (await session.execute(select(Module))).scalars().all()
    }
    for definition in MODULES:
        module = existing.get(definition.name)
        if module is None:
            module = Module(name=definition.name, is_active=True)
            session.add(module)
            existing[definition.name] = module
        module.display_name = definition.display_name
        module.description = definition.description
        module.order_index = definition.order_index
    await session.flush()
    return existing


async def seed_permissions(session: AsyncSession, modules: Dict[str, Module]) -> Dict[str, Permission]:
    existing = {
        p.name: p for p in (await session.execute(select(Permission))).scalars().all()
    }
    for definition in SYSTEM_PERMISSIONS:
        name = str(definition.name)
        permission = existing.get(name)
        if permission is None:
            permission = Permission(name=name, is_active=True)
            session.add(permission)
            existing[name] = permission
        permission.display_name = definition.display_name
        permission.description = definition.description
        permission.category = definition.category
        permission.module_id = modules[definition.name.module].id
    await session.flush()
    return existing


async def seed_system_roles(session: AsyncSession, permissions: Dict[str, Permission]) -> int:
    existing = {
        r.name: r for r in (await session.execute(select(Role))).scalars().all()
    }
    created = 0
    for definition in SYSTEM_ROLES:
        role = existing.get(definition.name)
        if role is not None:
            role.is_system_role = True
            role.level = definition.level
            continue

        role = Role(
            name=definition.name,
            display_name=definition.display_name,
            description=definition.description,
            level=definition.level,
            is_system_role=True,
            is_active=True,
        )
        session.add(role)
        await session.flush()

        for permission_def in SYSTEM_PERMISSIONS:
            if definition.includes(permission_def):
                session.add(RolePermission(
                    role_id=role.id,
                    permission_id=permissions[str(permission_def.name)].id,
                ))
        created += 1
    await session.flush()
    return created


async def seed_rbac(session: AsyncSession) -> Dict[str, int]:
    """Seed everything in one transaction. Returns counts."""
    try:
        modules = await seed_modules(session)
        permissions = await seed_permissions(session, modules)
        roles_created = await seed_system_roles(session, permissions)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    counts = {
        "modules": len(MODULES),
        "permissions": len(SYSTEM_PERMISSIONS),
        "roles_created": roles_created,
    }
    logger.info(f"Seeded RBAC catalog: {counts}")
    return counts


async def _seed_all() -> Dict[str, int]:
    from database.async_engine import close_database, get_async_session_factory, init_database

    await init_database()
    try:
        async with get_async_session_factory()() as session:
            return await seed_rbac(session)
    finally:
        await close_database()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    result = asyncio.run(_seed_all())
    print("=" * 60)
    print("RBAC SEEDING COMPLETE")
    print("=" * 60)
    for key, value in result.items():
        print(f"  {key}: {value}")
