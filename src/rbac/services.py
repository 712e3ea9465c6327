"""
Permission catalog administration - module/permission listing and activation.

Deactivating a permission or a module changes every affected user's
effective set at once, so both operations invalidate the whole cache.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database.models import Module, Permission

from .cache import PermissionCache
from .context import Principal
from .exceptions import RecordNotFound

logger = logging.getLogger(__name__)


class PermissionAdminService:
    """Read and toggle the permission catalog."""

    def __init__(self, session: AsyncSession, cache: Optional[PermissionCache] = None):
        self.session = session
        self.cache = cache

    async def list_modules_with_permissions(
        self,
        include_inactive: bool = False,
    ) -> List[Dict[str, Any]]:
        """Modules in display order, each with its permissions."""
        stmt = (
            select(Module)
            .options(selectinload(Module.permissions))
            .order_by(Module.order_index, Module.name)
        )
        if not include_inactive:
            stmt = stmt.where(Module.is_active.is_(True))

        modules = (await self.session.execute(stmt)).scalars().all()
        return [
            {
                **module.to_dict(),
                "permissions": [
                    permission.to_dict()
                    for permission in sorted(module.permissions, key=lambda p: p.name)
                    if include_inactive or permission.is_active
                ],
            }
            for module in modules
        ]

    async def set_permission_active(
        self,
        actor: Principal,
        permission_id: int,
        is_active: bool,
    ) -> Permission:
        permission = await self.session.get(Permission, permission_id)
        if permission is None:
            raise RecordNotFound("Permission not found")

        permission.is_active = is_active
        await self.session.commit()

        if self.cache is not None:
            self.cache.invalidate_all()
        logger.info(
            f"Permission {permission.name} {'activated' if is_active else 'deactivated'} "
            f"by user {actor.id}"
        )
        return permission

    async def set_module_active(
        self,
        actor: Principal,
        module_id: int,
        is_active: bool,
    ) -> Module:
        module = await self.session.get(Module, module_id)
        if module is None:
            raise RecordNotFound("Module not found")

        module.is_active = is_active
        await self.session.commit()

        if self.cache is not None:
            self.cache.invalidate_all()
        logger.info(
            f"Module {module.name} {'activated' if is_active else 'deactivated'} "
            f"by user {actor.id}"
        )
        return module
