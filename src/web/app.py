"""
FastAPI application factory for the ad-ops admin API.

Wires:
- Request ID middleware and request-aware logging
- Permission cache, resolver and route guard on app.state
- Uniform error envelopes for RBAC, validation and HTTP errors
- Role, permission, user and owned-resource routers under the API prefix

Usage:
    uvicorn web.app:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import Settings, get_settings, validate_startup_security
from database.async_engine import (
    close_database,
    get_async_engine,
    get_async_session_factory,
    init_database,
)
from middleware.correlation import RequestIdMiddleware, configure_logging
from rbac.cache import PermissionCache, get_permission_cache
from rbac.exceptions import RBACError, ResolutionError
from rbac.guard import RouteGuard
from rbac.resolver import PermissionResolver

from web.responses import error_response
from web.routers import (
    health_router,
    permissions_router,
    resource_routers,
    roles_router,
    users_router,
)

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

async def rbac_error_handler(request: Request, exc: RBACError):
    """Handle RBACError subclasses with their own status and code."""
    if isinstance(exc, ResolutionError):
        # Details stay in the log; clients get a generic message
        logger.error(f"Permission resolution failed on {request.url.path}: {exc.message}")
        return error_response(
            exc.status_code,
            "Unable to verify permissions",
            exc.code,
            request_id=_request_id(request),
        )

    logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return error_response(
        exc.status_code,
        exc.message,
        exc.code,
        exc.errors,
        request_id=_request_id(request),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with user-friendly messages."""
    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append(f"{field}: {error['msg']}")

    return error_response(
        400,
        "Invalid request data",
        "VALIDATION_ERROR",
        errors,
        request_id=_request_id(request),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(
        exc.status_code,
        str(exc.detail),
        "HTTP_ERROR",
        request_id=_request_id(request),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for unexpected exceptions."""
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return error_response(
        500,
        "An unexpected error occurred",
        "INTERNAL_ERROR",
        request_id=_request_id(request),
    )


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    cache: Optional[PermissionCache] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Application settings (default: get_settings())
        session_factory: Session factory; the process-wide one when omitted
        cache: Permission cache; the process-wide one when omitted
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    validate_startup_security(settings)

    owns_database = session_factory is None
    if owns_database:
        engine = get_async_engine()
        session_factory = get_async_session_factory()
    else:
        engine = session_factory.kw.get("bind")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            await init_database()
        logger.info(f"{settings.name} {settings.version} started ({settings.environment})")
        yield
        if owns_database:
            await close_database()

    app = FastAPI(
        title=settings.name,
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    if cache is None:
        cache = get_permission_cache()
    resolver = PermissionResolver(session_factory, cache)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.permission_cache = cache
    app.state.permission_resolver = resolver
    app.state.route_guard = RouteGuard(resolver)

    # Last added = first executed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(RBACError, rbac_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(health_router)
    app.include_router(roles_router, prefix=settings.api_prefix)
    app.include_router(permissions_router, prefix=settings.api_prefix)
    app.include_router(users_router, prefix=settings.api_prefix)
    for router in resource_routers:
        app.include_router(router, prefix=settings.api_prefix)

    return app
