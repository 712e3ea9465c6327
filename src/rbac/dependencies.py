"""
FastAPI dependencies for authentication context and route guarding.

Usage:
    @router.put("/campaigns/{campaign_id}")
    async def update_campaign(
        decision: AuthorizationDecision = Depends(RequirePermission("campaigns", Action.UPDATE)),
    ):
        principal = decision.principal

    # Or map the HTTP method to the action:
    @router.api_route("/brands", methods=["GET", "POST"])
    async def brands(decision = Depends(RequireRoutePermission("brands"))):
        ...
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional, Union

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from database.models import User

from .cache import PermissionCache
from .catalog import get_permission_catalog
from .context import Principal
from .exceptions import NotAuthenticated
from .guard import AuthorizationDecision, RouteGuard
from .jwt import get_token_user_id
from .permissions import Action, PermissionName
from .resolver import PermissionResolver

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# APPLICATION STATE
# =============================================================================

def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


def get_permission_cache(request: Request) -> Optional[PermissionCache]:
    return request.app.state.permission_cache


def get_permission_resolver(request: Request) -> PermissionResolver:
    return request.app.state.permission_resolver


def get_route_guard(request: Request) -> RouteGuard:
    return request.app.state.route_guard


async def get_db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session. Services commit; anything left open is rolled back."""
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# =============================================================================
# AUTHENTICATION
# =============================================================================

async def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Optional[Principal]:
    """
    Principal for a valid bearer token, else None.

    The role is read fresh from the database on every request.
    """
    if credentials is None:
        return None

    user_id = get_token_user_id(credentials.credentials)
    if user_id is None:
        return None

    async with session_factory() as session:
        user = await session.get(User, user_id, options=[selectinload(User.role)])

    if user is None or not user.is_active:
        logger.info(f"Bearer token for missing or inactive user {user_id}")
        return None

    principal = Principal.from_user(user)
    request.state.principal = principal
    return principal


async def require_principal(
    principal: Optional[Principal] = Depends(get_optional_principal),
) -> Principal:
    if principal is None:
        raise NotAuthenticated()
    return principal


# =============================================================================
# ROUTE GUARDS
# =============================================================================

async def _guard(
    request: Request,
    principal: Optional[Principal],
    guard: RouteGuard,
    permission: PermissionName,
) -> AuthorizationDecision:
    decision = await guard.authorize(principal, permission)
    request.state.rbac = decision
    decision.raise_for_outcome()
    return decision


class RequirePermission:
    """Dependency guarding a route with one module/action permission."""

    def __init__(self, module: str, action: Union[Action, str]):
        self.permission = PermissionName(module=module, action=Action(action))

    async def __call__(
        self,
        request: Request,
        principal: Optional[Principal] = Depends(get_optional_principal),
        guard: RouteGuard = Depends(get_route_guard),
    ) -> AuthorizationDecision:
        return await _guard(request, principal, guard, self.permission)


class RequireRoutePermission:
    """Dependency deriving the action from the request's HTTP method."""

    def __init__(self, module: str):
        self.module = module

    async def __call__(
        self,
        request: Request,
        principal: Optional[Principal] = Depends(get_optional_principal),
        guard: RouteGuard = Depends(get_route_guard),
    ) -> AuthorizationDecision:
        permission = get_permission_catalog().route_permission(self.module, request.method)
        return await _guard(request, principal, guard, permission)
