"""Request-scoped dependencies shared by the ordering routers."""

from dataclasses import dataclass

from fastapi import Header

from ordering.errors import AuthorizationError
from ordering.shared.actor import Role


@dataclass(frozen=True)
class Actor:
    id: str
    role: str


def current_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Actor:
    """Identify the caller from the headers set by the upstream auth proxy."""
    if not x_user_id or not x_user_role:
        raise AuthorizationError("Authentication required")
    if x_user_role not in {role.value for role in Role}:
        raise AuthorizationError("Unknown role", role=x_user_role)
    return Actor(id=x_user_id, role=x_user_role)
