"""JWT handling for resolving the calling actor.

Tokens are issued upstream by the marketplace identity service; this
service only verifies them and reads the actor claims (``sub``, ``role``
and an optional display ``name``).
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from reservations.config import settings
from reservations.core.exceptions import AuthenticationError
from reservations.core.permissions import Actor, Role


def create_access_token(
    claims: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Sign an access token with the configured key and lifetime."""
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {**claims, "exp": datetime.now(UTC) + lifetime, "type": "access"}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, token_type: str = "access") -> dict[str, Any]:
    """Decode a token, rejecting bad signatures, expiry and the wrong type."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}")

    if payload.get("type") != token_type:
        raise AuthenticationError("Invalid token type")
    return payload


def create_actor_token(actor_id: str, role: str, name: str | None = None) -> str:
    """Issue an access token carrying the claims an Actor is built from."""
    claims = {"sub": actor_id, "role": role}
    if name:
        claims["name"] = name
    return create_access_token(claims)


def decode_actor(token: str) -> Actor:
    """Build the calling Actor from a verified access token."""
    payload = verify_token(token, token_type="access")
    try:
        return Actor(id=UUID(payload["sub"]), role=Role(payload["role"]), name=payload.get("name"))
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token payload")
