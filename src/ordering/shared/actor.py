"""Who is acting on an order, as asserted by the authentication collaborator."""

from enum import Enum

from ordering.errors import AuthorizationError


class Role(Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"


def require_role(actor_role: str | None, *roles: Role) -> None:
    """Raise AuthorizationError unless ``actor_role`` is one of ``roles``."""
    allowed = {role.value for role in roles}
    if actor_role not in allowed:
        raise AuthorizationError(
            f"This action requires one of the roles: {', '.join(sorted(allowed))}",
            actor_role=actor_role,
        )


def is_admin(actor_role: str | None) -> bool:
    return actor_role == Role.ADMIN.value
