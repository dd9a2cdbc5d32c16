"""API dependencies for authentication and common operations."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from reservations.core.exceptions import AuthenticationError, AuthorizationError
from reservations.core.permissions import Actor
from reservations.core.security import decode_actor
from reservations.database import get_db

# Security scheme
security = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Actor:
    """Resolve the calling actor from the Bearer JWT."""
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    return decode_actor(credentials.credentials)


async def get_current_admin_actor(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    """Get current actor and verify they hold a staff role."""
    if not actor.is_admin:
        raise AuthorizationError("Staff access required")
    return actor


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(get_current_admin_actor)]
