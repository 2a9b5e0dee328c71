"""FastAPI dependencies for sessions and booking ownership."""

import logging

from fastapi import Depends, HTTPException, Query, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.core.security import TokenDecodeError, decode_access_token
from src.modules.bookings.access import AuthorizationContext, build_context
from src.modules.users.models import User
from src.shared.enums import UserRole

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthenticated(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _resolve_user(
    credentials: HTTPAuthorizationCredentials | None,
    db: AsyncSession,
) -> User | None:
    """Map a bearer token to an active account; tokens are minted by the auth service."""
    if credentials is None:
        return None
    try:
        payload = decode_access_token(credentials.credentials)
    except TokenDecodeError as exc:
        raise _unauthenticated("Invalid session token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthenticated("Session token has no subject")

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        logger.info("Rejected session for unknown or disabled user %s", user_id)
        raise _unauthenticated("Session user is disabled")
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Guests may call most booking routes, so a missing token is not an error."""
    return await _resolve_user(credentials, db)


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise _unauthenticated("Missing authentication")
    return user


def require_role(*roles: UserRole):
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operations staff only")
        return current_user

    return dependency


require_ops = require_role(UserRole.OPERATOR, UserRole.ADMIN)


async def get_authorization_context(
    access_code: str | None = Query(default=None, alias="accessCode", max_length=16),
    current_user: User | None = Depends(get_optional_user),
) -> AuthorizationContext:
    """Fold the optional session and optional ``accessCode`` into one context."""
    return build_context(current_user, access_code)
