"""Actor identity from JWT bearer tokens.

Tokens are issued by the marketplace's identity service; this service only
verifies them. ``sub`` carries the user id and ``name`` the display name.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from project_escrow.config import get_settings
from project_escrow.domain.actor import Actor
from project_escrow.domain.exceptions import AuthenticationError
from project_escrow.logging_config import bind_request_context

security = HTTPBearer(auto_error=False)


def create_access_token(user_id: uuid.UUID, name: str = "", expires_minutes: int | None = None) -> str:
    settings = get_settings()
    lifetime = expires_minutes or settings.jwt_access_token_expire_minutes
    claims = {
        "sub": str(user_id),
        "name": name,
        "exp": datetime.now(UTC) + timedelta(minutes=lifetime),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Actor:
    """Resolve the calling user from the Authorization header.

    Raises:
        AuthenticationError: If the header is missing or the token is
            invalid, expired, or lacks a UUID subject.
    """
    if credentials is None:
        raise AuthenticationError()
    payload = decode_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError as err:
        raise AuthenticationError("Invalid token subject") from err

    bind_request_context(actor_id=str(user_id))
    return Actor(user_id=user_id, name=str(payload.get("name") or ""))
