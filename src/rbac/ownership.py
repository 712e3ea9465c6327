"""
Ownership Filter - row-level scoping of ownership-bearing resources.

Non-elevated users see and modify only rows they created
(created_by = user.id). Elevated users (admin level and above) are
unrestricted. is_elevated() is the one elevation predicate used by
every permission check and every handler.
"""

import logging
from typing import Any, Iterator, Mapping, Optional, Union

from sqlalchemy import Select
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.expression import FromClause, Join

from .context import Principal
from .exceptions import NotAuthenticated, OwnershipViolation, RecordNotFound

logger = logging.getLogger(__name__)


# =============================================================================
# ELEVATION
# =============================================================================

ADMIN_LEVEL = 8
SUPER_ADMIN_LEVEL = 10

OWNER_COLUMN = "created_by"

# Fallback for legacy roles stored without a meaningful level
_ADMIN_ROLE_NAMES = frozenset({"admin", "super_admin", "superadmin"})
_SUPER_ADMIN_ROLE_NAMES = frozenset({"super_admin", "superadmin"})


def normalize_role_name(name: Optional[str]) -> str:
    """'Super Admin', 'super-admin' and 'super_admin' all become 'super_admin'."""
    return (name or "").strip().lower().replace("-", "_").replace(" ", "_")


def is_elevated(principal: Optional[Principal]) -> bool:
    """
    True if the principal bypasses permission checks and ownership scoping.

    Requires an active role with level >= ADMIN_LEVEL or an admin role name.
    """
    if principal is None or not principal.has_active_role:
        return False
    role = principal.role
    if role.level is not None and role.level >= ADMIN_LEVEL:
        return True
    return normalize_role_name(role.name) in _ADMIN_ROLE_NAMES


def is_super_admin(principal: Optional[Principal]) -> bool:
    """True if the principal may modify system roles."""
    if principal is None or not principal.has_active_role:
        return False
    role = principal.role
    if role.level is not None and role.level >= SUPER_ADMIN_LEVEL:
        return True
    return normalize_role_name(role.name) in _SUPER_ADMIN_ROLE_NAMES


# =============================================================================
# QUERY SCOPING
# =============================================================================

def _iter_tables(from_clause: FromClause) -> Iterator[FromClause]:
    if isinstance(from_clause, Join):
        yield from _iter_tables(from_clause.left)
        yield from _iter_tables(from_clause.right)
    else:
        yield from_clause


def _resolve_owner_column(
    stmt: Select,
    owner_column: Union[str, ColumnElement],
) -> ColumnElement:
    if not isinstance(owner_column, str):
        return owner_column

    # First FROM (left-most join side) carrying the column wins
    for from_clause in stmt.get_final_froms():
        for table in _iter_tables(from_clause):
            columns = getattr(table, "c", None)
            if columns is not None and owner_column in columns:
                return columns[owner_column]

    raise ValueError(f"Query has no '{owner_column}' column to scope on")


def scope_query(
    stmt: Select,
    principal: Optional[Principal],
    owner_column: Union[str, ColumnElement] = OWNER_COLUMN,
) -> Select:
    """
    Restrict a SELECT to the principal's own rows.

    Elevated principals get the statement back unchanged. Otherwise the
    owner predicate is AND-ed onto whatever criteria the statement
    already has.

    Args:
        stmt: A 2.0-style select()
        principal: The caller
        owner_column: Column name, or an explicit column for joins

    Raises:
        NotAuthenticated: If there is no principal
        ValueError: If the owner column cannot be found
    """
    if principal is None:
        raise NotAuthenticated()
    if is_elevated(principal):
        return stmt

    column = _resolve_owner_column(stmt, owner_column)
    return stmt.where(column == principal.id)


# =============================================================================
# RECORD CHECKS
# =============================================================================

def _owner_of(record: Any, owner_column: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(owner_column)
    return getattr(record, owner_column, None)


def can_access_record(
    record: Any,
    principal: Optional[Principal],
    owner_column: str = OWNER_COLUMN,
) -> bool:
    """Post-fetch check for a single loaded row (mapping or ORM object)."""
    if principal is None:
        return False
    if is_elevated(principal):
        return True
    owner = _owner_of(record, owner_column)
    return owner is not None and owner == principal.id


def authorize_record(
    record: Any,
    principal: Optional[Principal],
    owner_column: str = OWNER_COLUMN,
    resource: str = "Record",
) -> Any:
    """
    Return the record if the principal may act on it.

    Raises:
        RecordNotFound: The row does not exist (404)
        OwnershipViolation: The row exists but is not the caller's (403)
    """
    if record is None:
        raise RecordNotFound(f"{resource} not found")
    if not can_access_record(record, principal, owner_column):
        logger.warning(
            f"Ownership violation: user {principal.id if principal else None} "
            f"on {resource} owned by {_owner_of(record, owner_column)}"
        )
        raise OwnershipViolation()
    return record


def stamp_ownership(
    payload: Mapping[str, Any],
    principal: Optional[Principal],
    owner_column: str = OWNER_COLUMN,
) -> dict:
    """Copy of payload with the owner forced to the principal."""
    if principal is None:
        raise NotAuthenticated()
    stamped = dict(payload)
    stamped[owner_column] = principal.id
    return stamped
