"""
FastAPI dependencies: database session, user identity, cron secret.

User identity is a HS256 bearer JWT whose ``sub`` claim is the user id.
Cron endpoints are called by the platform scheduler with
``Authorization: Bearer <CRON_SECRET>``.
"""

from __future__ import annotations

import hmac
import logging
from datetime import timedelta

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt
from jose.exceptions import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import utcnow
from core.config import settings
from core.database import get_db
from core.models import User, UserRole

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

security = HTTPBearer(auto_error=False)


def create_access_token(user_id: int, expires_in: timedelta = timedelta(hours=12)) -> str:
    """Issue a token for ``user_id`` (used by tooling and tests)."""
    payload = {"sub": str(user_id), "exp": utcnow() + expires_in}
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    session: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the bearer token to a User.

    Raises:
        HTTPException 401: missing/invalid token or unknown user
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")
    if not settings.jwt_secret:
        logger.error("JWT_SECRET not configured; rejecting user request")
        raise _unauthorized("Authentication is not configured")

    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
        user_id = int(payload["sub"])
    except (JWTError, KeyError, ValueError) as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise _unauthorized("Invalid token")

    user = await session.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role is not UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user


async def require_cron_secret(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    """An empty CRON_SECRET rejects every call."""
    expected = settings.cron_secret
    provided = credentials.credentials if credentials else ""
    if not expected or not hmac.compare_digest(provided.encode(), expected.encode()):
        logger.warning("Unauthorized cron request")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
