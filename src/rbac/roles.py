"""
Role Service - role management, role permissions and user role assignment.

Provides:
- Role CRUD with validation
- Atomic replacement of a role's permission set
- Single permission grant/revoke
- User role assignment
- Privilege escalation prevention

Rules:
- System roles can only be modified by a super admin and are never deleted
- A role cannot be deleted while users hold it
- Below super admin, callers cannot create, edit, or hand out a role
  above their own level
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import (
    AuditAction,
    Module,
    Permission,
    Role,
    RolePermission,
    User,
)

from .audit import record_audit
from .cache import PermissionCache
from .context import Principal
from .exceptions import (
    DuplicateRecord,
    InvalidRoleMutation,
    PrivilegeEscalation,
    RecordNotFound,
    ValidationFailed,
)
from .ownership import is_super_admin
from .permissions import PermissionLike, as_permission_name

logger = logging.getLogger(__name__)


# =============================================================================
# VALIDATION
# =============================================================================

ROLE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_]+$")
ROLE_NAME_MIN_LENGTH = 3
ROLE_NAME_MAX_LENGTH = 50
ROLE_DESCRIPTION_MAX_LENGTH = 255
MIN_ROLE_LEVEL = 1
MAX_ROLE_LEVEL = 10

UPDATABLE_ROLE_FIELDS = frozenset({"name", "display_name", "description", "level", "is_active"})


def validate_role_fields(data: Dict[str, Any], partial: bool = False) -> List[str]:
    """
    Validate role fields. Returns a list of error messages (empty if valid).

    With partial=True only the fields present are checked.
    """
    errors: List[str] = []

    if "name" in data or not partial:
        name = (data.get("name") or "").strip()
        if not name:
            errors.append("Role name is required")
        elif not ROLE_NAME_MIN_LENGTH <= len(name) <= ROLE_NAME_MAX_LENGTH:
            errors.append(
                f"Role name must be between {ROLE_NAME_MIN_LENGTH} and "
                f"{ROLE_NAME_MAX_LENGTH} characters"
            )
        elif not ROLE_NAME_PATTERN.match(name):
            errors.append(
                "Role name can only contain letters, numbers, spaces, hyphens, and underscores"
            )

    description = data.get("description")
    if description is not None and len(description) > ROLE_DESCRIPTION_MAX_LENGTH:
        errors.append(f"Description must not exceed {ROLE_DESCRIPTION_MAX_LENGTH} characters")

    if "level" in data:
        level = data["level"]
        if isinstance(level, bool) or not isinstance(level, int) or not MIN_ROLE_LEVEL <= level <= MAX_ROLE_LEVEL:
            errors.append(f"Level must be an integer between {MIN_ROLE_LEVEL} and {MAX_ROLE_LEVEL}")

    if "is_active" in data and not isinstance(data["is_active"], bool):
        errors.append("is_active must be true or false")

    return errors


def _is_unique_violation(error: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed", PostgreSQL: "duplicate key value violates unique constraint"
    message = str(error.orig).lower()
    return "unique" in message or "duplicate" in message


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class RolePermissionChange:
    """Outcome of replacing a role's permission set."""
    role_id: int
    permissions: List[str]
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)


# =============================================================================
# ROLE SERVICE
# =============================================================================

class RoleService:
    """
    Role management service.

    Every mutation commits its own transaction and invalidates the
    permission cache only after the commit succeeds.
    """

    def __init__(self, session: AsyncSession, cache: Optional[PermissionCache] = None):
        self.session = session
        self.cache = cache

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_role(self, role_id: int) -> Role:
        role = await self.session.get(Role, role_id)
        if role is None:
            raise RecordNotFound("Role not found")
        return role

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        result = await self.session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    def _counts_query(self):
        permission_count = (
            select(func.count(RolePermission.permission_id))
            .where(RolePermission.role_id == Role.id)
            .correlate(Role)
            .scalar_subquery()
        )
        user_count = (
            select(func.count(User.id))
            .where(User.role_id == Role.id)
            .correlate(Role)
            .scalar_subquery()
        )
        return select(
            Role,
            permission_count.label("permission_count"),
            user_count.label("user_count"),
        )

    async def list_roles(
        self,
        search: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Roles with permission/user counts, highest level first."""
        stmt = self._counts_query()
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(
                    Role.name.ilike(pattern),
                    Role.display_name.ilike(pattern),
                    Role.description.ilike(pattern),
                )
            )
        if is_active is not None:
            stmt = stmt.where(Role.is_active.is_(is_active))
        stmt = stmt.order_by(Role.level.desc(), Role.name.asc())

        result = await self.session.execute(stmt)
        return [
            {**role.to_dict(), "permission_count": permission_count, "user_count": user_count}
            for role, permission_count, user_count in result.all()
        ]

    async def get_role_detail(self, role_id: int) -> Dict[str, Any]:
        result = await self.session.execute(self._counts_query().where(Role.id == role_id))
        row = result.first()
        if row is None:
            raise RecordNotFound("Role not found")
        role, permission_count, user_count = row
        return {**role.to_dict(), "permission_count": permission_count, "user_count": user_count}

    async def get_role_permissions(self, role_id: int) -> List[Dict[str, Any]]:
        """A role's permissions grouped by module, in module display order."""
        await self.get_role(role_id)

        stmt = (
            select(Permission, Module)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(Module, Module.id == Permission.module_id)
            .where(RolePermission.role_id == role_id)
            .order_by(Module.order_index, Module.name, Permission.name)
        )
        result = await self.session.execute(stmt)

        groups: Dict[str, Dict[str, Any]] = {}
        for permission, module in result.all():
            group = groups.setdefault(module.name, {
                "module_name": module.name,
                "module_display_name": module.display_name,
                "module_is_active": module.is_active,
                "permissions": [],
            })
            group["permissions"].append(permission.to_dict())
        return list(groups.values())

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def _check_level_ceiling(self, actor: Principal, level: int, verb: str) -> None:
        if is_super_admin(actor):
            return
        actor_level = actor.role.level if actor.role else 0
        if level > actor_level:
            logger.warning(
                f"Privilege escalation blocked: user {actor.id} (level {actor_level}) "
                f"tried to {verb} level {level}"
            )
            raise PrivilegeEscalation(
                f"Cannot {verb} a role above your own level",
                errors=[f"Your level ({actor_level}) cannot {verb} level {level} roles"],
            )

    def _check_mutable(self, actor: Principal, role: Role) -> None:
        if role.is_system_role and not is_super_admin(actor):
            raise InvalidRoleMutation("Only a super admin can modify system roles")
        self._check_level_ceiling(actor, role.level, "modify")

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Role.id).where(func.lower(Role.name) == name.lower())
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        if (await self.session.execute(stmt)).first() is not None:
            raise DuplicateRecord("Role name already exists")

    async def _commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"Role change rejected by database constraint: {e.orig}")
            if _is_unique_violation(e):
                raise DuplicateRecord("Role change conflicts with existing data") from e
            raise ValidationFailed("Role change violates a data constraint") from e
        except Exception:
            await self.session.rollback()
            raise

    # -------------------------------------------------------------------------
    # Role CRUD
    # -------------------------------------------------------------------------

    async def create_role(
        self,
        actor: Principal,
        name: str,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
        level: int = 1,
        is_active: bool = True,
    ) -> Role:
        """Create a custom (non-system) role."""
        data = {"name": name, "description": description, "level": level}
        errors = validate_role_fields(data)
        if errors:
            raise ValidationFailed(errors=errors)

        self._check_level_ceiling(actor, level, "create")
        name = name.strip()
        await self._ensure_unique_name(name)

        role = Role(
            name=name,
            display_name=display_name or name,
            description=description,
            level=level,
            is_system_role=False,
            is_active=is_active,
        )
        self.session.add(role)
        await self._commit()

        logger.info(f"Role '{role.name}' (level {role.level}) created by user {actor.id}")
        return role

    async def update_role(self, actor: Principal, role_id: int, changes: Dict[str, Any]) -> Role:
        """
        Update role fields.

        Only name, display_name, description, level and is_active can change;
        is_system_role is never client-writable.
        """
        role = await self.get_role(role_id)
        self._check_mutable(actor, role)

        changes = {k: v for k, v in changes.items() if k in UPDATABLE_ROLE_FIELDS}
        errors = validate_role_fields(changes, partial=True)
        if errors:
            raise ValidationFailed(errors=errors)

        if "level" in changes:
            self._check_level_ceiling(actor, changes["level"], "set")
        if "name" in changes:
            changes["name"] = changes["name"].strip()
            await self._ensure_unique_name(changes["name"], exclude_id=role.id)

        activation_changed = "is_active" in changes and changes["is_active"] != role.is_active
        for key, value in changes.items():
            setattr(role, key, value)
        await self._commit()

        if activation_changed and self.cache is not None:
            self.cache.invalidate_role(role.id)

        logger.info(f"Role '{role.name}' updated by user {actor.id}: {sorted(changes)}")
        return role

    async def delete_role(self, actor: Principal, role_id: int) -> None:
        role = await self.get_role(role_id)

        if role.is_system_role:
            raise InvalidRoleMutation("System roles cannot be deleted")
        self._check_level_ceiling(actor, role.level, "delete")

        user_count = (
            await self.session.execute(
                select(func.count(User.id)).where(User.role_id == role.id)
            )
        ).scalar_one()
        if user_count > 0:
            raise InvalidRoleMutation(
                f"Role is assigned to {user_count} user(s)",
                errors=["Reassign these users before deleting the role"],
                status_code=409,
            )

        await self.session.delete(role)
        await self._commit()

        if self.cache is not None:
            self.cache.invalidate_role(role_id)
        logger.info(f"Role '{role.name}' deleted by user {actor.id}")

    # -------------------------------------------------------------------------
    # Role permissions
    # -------------------------------------------------------------------------

    async def _load_permissions(self, names: Iterable[PermissionLike]) -> Dict[str, Permission]:
        wanted: Dict[str, None] = {}
        errors: List[str] = []
        for raw in names:
            try:
                wanted[str(as_permission_name(raw))] = None
            except ValueError as e:
                errors.append(str(e))

        found: Dict[str, Permission] = {}
        if wanted:
            result = await self.session.execute(
                select(Permission).where(Permission.name.in_(list(wanted)))
            )
            found = {p.name: p for p in result.scalars().all()}

        errors.extend(f"Unknown permission: {name}" for name in wanted if name not in found)
        if errors:
            raise ValidationFailed("Invalid permissions", errors=errors)
        return found

    async def set_role_permissions(
        self,
        actor: Principal,
        role_id: int,
        permission_names: Iterable[PermissionLike],
        reason: Optional[str] = None,
    ) -> RolePermissionChange:
        """
        Replace a role's whole permission set in one transaction.

        Readers never observe a partially applied set.
        """
        role = await self.get_role(role_id)
        self._check_mutable(actor, role)
        permissions = await self._load_permissions(permission_names)

        current = set(
            (
                await self.session.execute(
                    select(Permission.name)
                    .join(RolePermission, RolePermission.permission_id == Permission.id)
                    .where(RolePermission.role_id == role.id)
                )
            ).scalars().all()
        )

        await self.session.execute(
            delete(RolePermission).where(RolePermission.role_id == role.id)
        )
        for permission in permissions.values():
            self.session.add(RolePermission(
                role_id=role.id,
                permission_id=permission.id,
                granted_by=actor.id,
            ))
            record_audit(
                self.session, actor, AuditAction.ASSIGN,
                target_role_id=role.id,
                permission_id=permission.id,
                reason=reason,
            )
        if not permissions:
            record_audit(
                self.session, actor, AuditAction.ASSIGN,
                target_role_id=role.id,
                reason=reason or "All permissions removed",
            )
        await self._commit()

        if self.cache is not None:
            self.cache.invalidate_role(role.id)

        new_names = set(permissions)
        logger.info(
            f"Role '{role.name}' permissions replaced by user {actor.id} "
            f"({len(new_names)} total)"
        )
        return RolePermissionChange(
            role_id=role.id,
            permissions=sorted(new_names),
            added=sorted(new_names - current),
            removed=sorted(current - new_names),
        )

    async def grant_permission(
        self,
        actor: Principal,
        role_id: int,
        permission_name: PermissionLike,
        reason: Optional[str] = None,
    ) -> None:
        role = await self.get_role(role_id)
        self._check_mutable(actor, role)
        permission = next(iter((await self._load_permissions([permission_name])).values()))

        if await self.session.get(RolePermission, (role.id, permission.id)) is not None:
            raise DuplicateRecord(f"Role already has permission {permission.name}")

        self.session.add(RolePermission(
            role_id=role.id,
            permission_id=permission.id,
            granted_by=actor.id,
        ))
        record_audit(
            self.session, actor, AuditAction.GRANT,
            target_role_id=role.id,
            permission_id=permission.id,
            reason=reason,
        )
        await self._commit()

        if self.cache is not None:
            self.cache.invalidate_role(role.id)
        logger.info(f"Granted {permission.name} to role '{role.name}' by user {actor.id}")

    async def revoke_permission(
        self,
        actor: Principal,
        role_id: int,
        permission_name: PermissionLike,
        reason: Optional[str] = None,
    ) -> None:
        role = await self.get_role(role_id)
        self._check_mutable(actor, role)
        permission = next(iter((await self._load_permissions([permission_name])).values()))

        link = await self.session.get(RolePermission, (role.id, permission.id))
        if link is None:
            raise RecordNotFound(f"Role does not have permission {permission.name}")

        await self.session.delete(link)
        record_audit(
            self.session, actor, AuditAction.REVOKE,
            target_role_id=role.id,
            permission_id=permission.id,
            reason=reason,
        )
        await self._commit()

        if self.cache is not None:
            self.cache.invalidate_role(role.id)
        logger.info(f"Revoked {permission.name} from role '{role.name}' by user {actor.id}")

    # -------------------------------------------------------------------------
    # User role assignment
    # -------------------------------------------------------------------------

    async def assign_user_role(
        self,
        actor: Principal,
        user_id: int,
        role_id: int,
        reason: Optional[str] = None,
    ) -> User:
        """
        Move a user to another role.

        Validates:
        - User and role exist, role is active
        - Actor outranks both the new role and the user's current role
        """
        user = await self.session.get(User, user_id)
        if user is None:
            raise RecordNotFound("User not found")
        role = await self.get_role(role_id)
        if not role.is_active:
            raise ValidationFailed("Role is not active")

        self._check_level_ceiling(actor, role.level, "assign")
        if user.role_id is not None and user.role_id != role.id:
            current = await self.session.get(Role, user.role_id)
            if current is not None:
                self._check_level_ceiling(actor, current.level, "reassign users from")

        previous_role_id = user.role_id
        user.role_id = role.id
        record_audit(
            self.session, actor, AuditAction.ROLE_ASSIGN,
            target_role_id=role.id,
            target_user_id=user.id,
            reason=reason or (
                f"Changed from role {previous_role_id}" if previous_role_id else None
            ),
        )
        await self._commit()

        if self.cache is not None:
            self.cache.invalidate_user(user.id)
        logger.info(f"User {user.id} assigned role '{role.name}' by user {actor.id}")
        return user
