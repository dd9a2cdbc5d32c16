"""Actor roles and the authorization decorator for service entry points."""

import inspect
from dataclasses import dataclass
from enum import Enum
from functools import wraps
from typing import Any, Callable
from uuid import UUID

from reservations.core.exceptions import AuthorizationError


class Role(str, Enum):
    """Roles resolved from the identity provider."""

    TRAVELER = "traveler"
    PARTNER = "partner"
    EMPLOYEE = "employee"
    MASTER = "master"


ADMIN_ROLES: frozenset[Role] = frozenset({Role.PARTNER, Role.EMPLOYEE, Role.MASTER})


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    id: UUID
    role: Role
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def is_owner_or_admin(actor: Actor, owner_id: UUID) -> bool:
    """Check if an actor owns a resource or holds an admin role."""
    return actor.is_admin or actor.id == owner_id


def can_manage_asset(actor: Actor, partner_id: UUID | None) -> bool:
    """Partners manage only their own assets; staff manage all of them."""
    if actor.role == Role.PARTNER:
        return partner_id is not None and actor.id == partner_id
    return actor.is_admin


def require_roles(*allowed_roles: Role) -> Callable[..., Any]:
    """Decorator restricting an async service operation to the given roles.

    The wrapped coroutine must accept an ``actor`` argument, positional or
    keyword.
    """
    allowed = frozenset(allowed_roles)

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        signature = inspect.signature(func)
        if "actor" not in signature.parameters:
            raise TypeError(f"{func.__qualname__} must accept an 'actor' argument")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            actor = signature.bind_partial(*args, **kwargs).arguments.get("actor")
            if actor is None:
                raise AuthorizationError("An authenticated actor is required")
            if actor.role not in allowed:
                raise AuthorizationError(
                    f"Role '{actor.role.value}' is not authorized for this action"
                )
            return await func(*args, **kwargs)

        return wrapper

    return decorator


require_admin = require_roles(*ADMIN_ROLES)
