"""Tests for effective permission resolution against the database."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from database.models import Module, Permission, Role, RolePermission
from rbac.exceptions import ResolutionError
from rbac.permissions import PermissionName
from rbac.resolver import PermissionResolver


def _names(permissions):
    return {str(p) for p in permissions}


class TestResolveEffectivePermissions:
    """Effective set = active permissions in active modules on an active role."""

    @pytest.mark.asyncio
    async def test_editor_gets_seeded_permissions(self, session_factory, principals):
        resolver = PermissionResolver(session_factory)
        names = _names(await resolver.resolve_effective_permissions(principals["editor"]))

        assert "campaigns_read" in names
        assert "campaigns_update" in names
        assert "dashboard_view" in names
        assert "campaigns_delete" not in names
        assert "roles_read" not in names

    @pytest.mark.asyncio
    async def test_none_principal_resolves_empty(self, session_factory):
        resolver = PermissionResolver(session_factory)
        assert await resolver.resolve_effective_permissions(None) == frozenset()

    @pytest.mark.asyncio
    async def test_user_without_role_resolves_empty(self, session_factory, seeded, make_user, make_principal):
        user = await make_user("roleless")
        resolver = PermissionResolver(session_factory)
        principal = make_principal(user, "none", 1)
        assert await resolver.resolve_effective_permissions(principal) == frozenset()

    @pytest.mark.asyncio
    async def test_inactive_role_resolves_empty(self, session_factory, seeded, principals):
        async with session_factory() as session:
            await session.execute(update(Role).where(Role.name == "editor").values(is_active=False))
            await session.commit()

        resolver = PermissionResolver(session_factory)
        assert await resolver.resolve_effective_permissions(principals["editor"]) == frozenset()

    @pytest.mark.asyncio
    async def test_inactive_user_resolves_empty(self, session_factory, seeded, make_user, make_principal):
        async with session_factory() as session:
            viewer_role = (await session.execute(select(Role).where(Role.name == "viewer"))).scalar_one()
        user = await make_user("disabled", role_id=viewer_role.id, is_active=False)

        resolver = PermissionResolver(session_factory)
        principal = make_principal(user, "viewer", 1)
        assert await resolver.resolve_effective_permissions(principal) == frozenset()

    @pytest.mark.asyncio
    async def test_inactive_permission_excluded(self, session_factory, principals):
        async with session_factory() as session:
            await session.execute(
                update(Permission).where(Permission.name == "campaigns_read").values(is_active=False)
            )
            await session.commit()

        resolver = PermissionResolver(session_factory)
        names = _names(await resolver.resolve_effective_permissions(principals["editor"]))
        assert "campaigns_read" not in names
        assert "campaigns_update" in names

    @pytest.mark.asyncio
    async def test_inactive_module_excludes_all_its_permissions(self, session_factory, principals):
        async with session_factory() as session:
            await session.execute(update(Module).where(Module.name == "campaigns").values(is_active=False))
            await session.commit()

        resolver = PermissionResolver(session_factory)
        names = _names(await resolver.resolve_effective_permissions(principals["editor"]))
        assert not any(n.startswith("campaigns_") for n in names)
        assert "brands_read" in names

    @pytest.mark.asyncio
    async def test_permission_filed_under_wrong_module_skipped(self, session_factory, principals):
        async with session_factory() as session:
            brands = (await session.execute(select(Module).where(Module.name == "brands"))).scalar_one()
            await session.execute(
                update(Permission).where(Permission.name == "cards_read").values(module_id=brands.id)
            )
            await session.commit()

        resolver = PermissionResolver(session_factory)
        names = _names(await resolver.resolve_effective_permissions(principals["viewer"]))
        assert "cards_read" not in names
        assert "brands_read" in names


class TestHasPermission:
    """Single permission checks."""

    @pytest.mark.asyncio
    async def test_granted_and_missing(self, session_factory, principals):
        resolver = PermissionResolver(session_factory)
        assert await resolver.has_permission(principals["viewer"], "campaigns_read")
        assert not await resolver.has_permission(principals["viewer"], "campaigns_update")

    @pytest.mark.asyncio
    async def test_elevated_passes_without_grant(self, session_factory, principals):
        async with session_factory() as session:
            admin = (await session.execute(select(Role).where(Role.name == "admin"))).scalar_one()
            await session.execute(RolePermission.__table__.delete().where(RolePermission.role_id == admin.id))
            await session.commit()

        resolver = PermissionResolver(session_factory)
        assert await resolver.has_permission(principals["admin"], "roles_delete")

    @pytest.mark.asyncio
    async def test_inactive_role_in_principal_fails(self, session_factory, seeded, make_principal):
        resolver = PermissionResolver(session_factory)
        principal = make_principal(seeded["admin"], "admin", 8, is_active=False)
        assert not await resolver.has_permission(principal, "campaigns_read")

    @pytest.mark.asyncio
    async def test_accepts_permission_name_instances(self, session_factory, principals):
        resolver = PermissionResolver(session_factory)
        assert await resolver.has_permission(principals["viewer"], PermissionName("brands", "read"))


class TestCaching:
    """Resolution through the permission cache."""

    @pytest.mark.asyncio
    async def test_deactivated_permission_still_granted_until_ttl(self, session_factory, principals, permission_cache, clock):
        """Without an invalidation call a stale set lives until the TTL expires."""
        resolver = PermissionResolver(session_factory, permission_cache)
        editor = principals["editor"]
        assert await resolver.has_permission(editor, "facebook_pages_update")

        async with session_factory() as session:
            await session.execute(
                update(Permission)
                .where(Permission.name == "facebook_pages_update")
                .values(is_active=False)
            )
            await session.commit()

        clock.advance(299)
        assert await resolver.has_permission(editor, "facebook_pages_update")

        clock.advance(1)
        assert not await resolver.has_permission(editor, "facebook_pages_update")

    @pytest.mark.asyncio
    async def test_removed_grant_visible_after_ttl(self, session_factory, principals, permission_cache, clock):
        resolver = PermissionResolver(session_factory, permission_cache)
        editor = principals["editor"]
        assert await resolver.has_permission(editor, "campaigns_update")

        async with session_factory() as session:
            permission = (
                await session.execute(select(Permission).where(Permission.name == "campaigns_update"))
            ).scalar_one()
            await session.execute(
                RolePermission.__table__.delete().where(
                    RolePermission.role_id == editor.role.id,
                    RolePermission.permission_id == permission.id,
                )
            )
            await session.commit()

        clock.advance(300)
        assert not await resolver.has_permission(editor, "campaigns_update")

    @pytest.mark.asyncio
    async def test_cached_entry_records_role(self, session_factory, principals, permission_cache):
        resolver = PermissionResolver(session_factory, permission_cache)
        await resolver.resolve_effective_permissions(principals["viewer"])
        entry = permission_cache.get(principals["viewer"].id)
        assert entry.role_id == principals["viewer"].role.id


class TestFailures:
    """Catalog read failures surface as ResolutionError."""

    @pytest.mark.asyncio
    async def test_database_error_raises_resolution_error(self, principals):
        broken_session = MagicMock()
        broken_session.__aenter__.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        factory = MagicMock(return_value=broken_session)

        resolver = PermissionResolver(factory)
        with pytest.raises(ResolutionError):
            await resolver.resolve_effective_permissions(principals["editor"])

    @pytest.mark.asyncio
    async def test_database_error_never_grants(self, principals, permission_cache):
        broken_session = MagicMock()
        broken_session.__aenter__.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        factory = MagicMock(return_value=broken_session)

        resolver = PermissionResolver(factory, permission_cache)
        with pytest.raises(ResolutionError):
            await resolver.has_permission(principals["editor"], "campaigns_read")
        assert permission_cache.get(principals["editor"].id) is None
