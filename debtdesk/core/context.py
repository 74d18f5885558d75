"""Caller identity passed explicitly into every service operation."""

from dataclasses import dataclass
from typing import Optional

from ..models.schemas import Role


@dataclass(frozen=True)
class UserContext:
    """Who is calling, and in which role.

    Authentication is delegated to the gateway; this object only carries
    the verified identity so services can scope data and stamp writes.
    """
    user_id: Optional[str]
    role: Role
    email: Optional[str] = None
    client_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def sender_name(self) -> str:
        return self.display_name or self.email or "Unknown User"

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles


ANONYMOUS = UserContext(user_id=None, role=Role.CLIENT)
