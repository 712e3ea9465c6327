"""
SQLAlchemy ORM Models for the ad-ops admin database.

Tables:
- modules: Application modules permissions are scoped to
- permissions: Module/action permission catalog (seeded)
- roles: Leveled permission bundles
- role_permissions: Role-to-permission mappings
- users: Admin panel users (exactly one role each)
- permission_audit_log: Grant/revoke/assign audit trail
- campaigns, brands, business_managers, cards,
  facebook_accounts, facebook_pages: Ownership-bearing resources
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict

from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, DateTime,
    Text, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base, declared_attr, relationship


Base = declarative_base()


def _serialize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, PyEnum):
        return value.value
    return value


class SerializableMixin:
    """Column-based dict conversion for API responses."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            column.name: _serialize(getattr(self, column.name))
            for column in self.__table__.columns
        }


# =============================================================================
# ENUMERATIONS
# =============================================================================

class AuditAction(str, PyEnum):
    """Actions recorded in the permission audit log."""
    GRANT = "GRANT"              # Single permission added to a role
    REVOKE = "REVOKE"            # Single permission removed from a role
    ASSIGN = "ASSIGN"            # Role permission set replaced
    ROLE_ASSIGN = "ROLE_ASSIGN"  # User moved to another role


# =============================================================================
# MODULE MODEL
# =============================================================================

class Module(SerializableMixin, Base):
    """
    Application module - a functional area permissions are scoped to.

    Seeded from the module registry; never deleted while permissions
    reference it.
    """
    __tablename__ = "modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(150), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    order_index = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    permissions = relationship("Permission", back_populates="module")

    def __repr__(self):
        return f"<Module(name={self.name}, active={self.is_active})>"


# =============================================================================
# PERMISSION MODEL
# =============================================================================

class Permission(SerializableMixin, Base):
    """
    Permission catalog entry.

    Identified by name "<module>_<action>" (e.g. "campaigns_read").
    Soft-disabled through is_active, never hard-deleted while a role
    references it.
    """
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False, unique=True, index=True)
    display_name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), nullable=True)
    module_id = Column(
        Integer,
        ForeignKey("modules.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    module = relationship("Module", back_populates="permissions")
    role_permissions = relationship("RolePermission", back_populates="permission")

    __table_args__ = (
        Index("ix_permission_module_active", "module_id", "is_active"),
    )

    def __repr__(self):
        return f"<Permission(name={self.name}, active={self.is_active})>"


# =============================================================================
# ROLE MODEL
# =============================================================================

class Role(SerializableMixin, Base):
    """
    Role - a named, leveled collection of permissions.

    System roles are seeded and can only be edited by a super admin.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True, index=True)
    display_name = Column(String(100), nullable=True)
    description = Column(String(255), nullable=True)
    level = Column(Integer, nullable=False, default=1)
    is_system_role = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    role_permissions = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    users = relationship("User", back_populates="role", passive_deletes="all")

    __table_args__ = (
        CheckConstraint("level >= 1 AND level <= 10", name="ck_role_level"),
        Index("ix_role_level_active", "level", "is_active"),
    )

    def __repr__(self):
        return f"<Role(name={self.name}, level={self.level})>"


# =============================================================================
# ROLE-PERMISSION MAPPING
# =============================================================================

class RolePermission(Base):
    """Role-to-Permission mapping."""
    __tablename__ = "role_permissions"

    role_id = Column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True
    )
    permission_id = Column(
        Integer,
        ForeignKey("permissions.id", ondelete="RESTRICT"),
        primary_key=True
    )

    granted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    granted_by = Column(Integer, nullable=True)

    role = relationship("Role", back_populates="role_permissions")
    permission = relationship("Permission", back_populates="role_permissions")

    __table_args__ = (
        Index("ix_role_permission_permission", "permission_id"),
    )

    def __repr__(self):
        return f"<RolePermission(role={self.role_id}, permission={self.permission_id})>"


# =============================================================================
# USER MODEL
# =============================================================================

class User(SerializableMixin, Base):
    """Admin panel user. Holds exactly one role."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    role_id = Column(
        Integer,
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    role = relationship("Role", back_populates="users")

    def __repr__(self):
        return f"<User(username={self.username}, role_id={self.role_id})>"


# =============================================================================
# AUDIT LOG
# =============================================================================

class PermissionAuditLog(SerializableMixin, Base):
    """Append-only trail of permission and role assignment changes."""
    __tablename__ = "permission_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=True, comment="Actor who made the change")
    target_role_id = Column(Integer, nullable=True)
    target_user_id = Column(Integer, nullable=True)
    permission_id = Column(Integer, nullable=True)
    action = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_target_role", "target_role_id"),
        Index("ix_audit_actor", "user_id"),
    )


# =============================================================================
# OWNERSHIP-BEARING RESOURCES
# =============================================================================

class OwnedMixin(SerializableMixin):
    """Columns shared by every resource scoped to its creator."""

    @declared_attr
    def created_by(cls):
        return Column(
            Integer,
            ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
            index=True
        )

    @declared_attr
    def created_at(cls):
        return Column(DateTime, default=datetime.utcnow, nullable=False)

    @declared_attr
    def updated_at(cls):
        return Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Brand(OwnedMixin, Base):
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    website = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)


class Campaign(OwnedMixin, Base):
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    status = Column(String(30), nullable=False, default="draft")
    budget = Column(Numeric(12, 2, asdecimal=False), nullable=True)
    brand_id = Column(Integer, ForeignKey("brands.id", ondelete="SET NULL"), nullable=True)
    description = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_campaign_owner_status", "created_by", "status"),
    )


class BusinessManager(OwnedMixin, Base):
    __tablename__ = "business_managers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    bm_id = Column(String(100), nullable=True, comment="External business manager id")
    status = Column(String(30), nullable=False, default="active")


class Card(OwnedMixin, Base):
    __tablename__ = "cards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    card_name = Column(String(200), nullable=False)
    last_four = Column(String(4), nullable=True)
    provider = Column(String(50), nullable=True)
    status = Column(String(30), nullable=False, default="active")


class FacebookAccount(OwnedMixin, Base):
    __tablename__ = "facebook_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    account_id = Column(String(100), nullable=True, comment="External ad account id")
    business_manager_id = Column(
        Integer,
        ForeignKey("business_managers.id", ondelete="SET NULL"),
        nullable=True
    )
    status = Column(String(30), nullable=False, default="active")


class FacebookPage(OwnedMixin, Base):
    __tablename__ = "facebook_pages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    page_id = Column(String(100), nullable=True, comment="External page id")
    facebook_account_id = Column(
        Integer,
        ForeignKey("facebook_accounts.id", ondelete="SET NULL"),
        nullable=True
    )
    status = Column(String(30), nullable=False, default="active")
