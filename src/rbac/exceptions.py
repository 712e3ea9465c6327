"""
Authorization and role-management errors.

Every error carries the HTTP status and machine code the web layer uses
to build the error envelope.
"""

from typing import Any, Dict, List, Optional


class RBACError(Exception):
    """Base class for access-control errors."""

    status_code: int = 500
    code: str = "RBAC_ERROR"
    default_message: str = "Access control error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        errors: Optional[List[str]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.errors:
            result["errors"] = self.errors
        return result


class NotAuthenticated(RBACError):
    """No principal present on the request."""
    status_code = 401
    code = "NOT_AUTHENTICATED"
    default_message = "Authentication required"


class PermissionDenied(RBACError):
    """Resolved permissions do not cover the request and elevation does not apply."""
    status_code = 403
    code = "PERMISSION_DENIED"
    default_message = "Insufficient permissions"

    def __init__(self, message: Optional[str] = None, *, permission: Optional[str] = None, **kwargs):
        self.permission = permission
        if message is None and permission:
            message = f"Missing permission: {permission}"
        super().__init__(message, **kwargs)


class RoleInactive(PermissionDenied):
    """Principal's role exists but is deactivated."""
    code = "ROLE_INACTIVE"
    default_message = "Your role is inactive"


class ResolutionError(RBACError):
    """
    The permission catalog could not be read.

    A system fault, not an authorization outcome. Callers still deny.
    """
    status_code = 500
    code = "RESOLUTION_ERROR"
    default_message = "Unable to verify permissions"


class OwnershipViolation(RBACError):
    """Record exists but belongs to another user."""
    status_code = 403
    code = "OWNERSHIP_VIOLATION"
    default_message = "You do not have access to this record"


class InvalidRoleMutation(RBACError):
    """System-role edit by a non-super-admin, or deletion of a role in use."""
    status_code = 403
    code = "INVALID_ROLE_MUTATION"
    default_message = "This role cannot be modified"


class PrivilegeEscalation(InvalidRoleMutation):
    """Caller tried to create, raise or hand out a level above their own."""
    code = "PRIVILEGE_ESCALATION"
    default_message = "Cannot grant a role level above your own"


class RecordNotFound(RBACError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Record not found"


class ValidationFailed(RBACError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class DuplicateRecord(RBACError):
    status_code = 409
    code = "DUPLICATE_ENTRY"
    default_message = "Record already exists"
