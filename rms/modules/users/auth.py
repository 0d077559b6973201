"""JWT authentication dependency for FastAPI.

Validates the portal-issued Bearer token, then resolves the caller's RMS
provisioning (branch role assignments) into an ``ActorContext``.
"""

import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from rms.config import settings
from rms.database.session import get_db
from rms.exceptions import ForbiddenException, UnauthorizedException
from rms.modules.users.service import ActorContext, UsersService

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthorizedException on failure."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> ActorContext:
    """FastAPI dependency returning the provisioned RMS actor for this request."""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = _decode_token(credentials.credentials)
    portal_user_id = payload.get("sub")
    if not portal_user_id:
        raise UnauthorizedException("Token is missing required claims")

    actor = await UsersService(db).find_by_portal_id(portal_user_id)
    if actor is None:
        raise ForbiddenException("User not provisioned in RMS; contact your administrator")

    if request.client is not None:
        actor.ip_address = request.client.host
    request.state.actor = actor
    return actor
