"""
Authenticated principal passed from the authentication layer into the
permission resolver, ownership filter and route guard.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class RoleInfo:
    """The principal's single role as seen at authentication time."""
    name: str
    level: int
    is_active: bool = True
    id: Optional[int] = None


@dataclass(frozen=True)
class Principal:
    """
    Identity of the caller.

    Usage:
        principal = Principal(id=42, role=RoleInfo(name="editor", level=3))
        if is_elevated(principal):
            ...
    """
    id: int
    role: Optional[RoleInfo] = None
    username: Optional[str] = None

    @classmethod
    def from_user(cls, user: Any) -> "Principal":
        """Build from a loaded User row (role relationship already loaded)."""
        role = user.role
        return cls(
            id=user.id,
            username=user.username,
            role=None if role is None else RoleInfo(
                id=role.id,
                name=role.name,
                level=role.level,
                is_active=role.is_active,
            ),
        )

    @property
    def has_active_role(self) -> bool:
        return self.role is not None and self.role.is_active

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "role": None if self.role is None else {
                "id": self.role.id,
                "name": self.role.name,
                "level": self.role.level,
                "is_active": self.role.is_active,
            },
        }
