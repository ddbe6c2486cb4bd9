"""Session-token authentication for the acting user.

Token issuance (login, SSO) happens outside this service. Requests carry a
signed JWT either as the ``session`` cookie (browser clients) or as a Bearer
token (programmatic access); ``sub`` holds the user id.

The acting user's platform role feeds contact visibility: ``UserRole.ADMIN``
bypasses group-based restrictions.
"""

from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.config import get_settings
from crm.core.logging import get_logger
from crm.database import get_db
from crm.models.user import User, UserRole

logger = get_logger(__name__)

settings = get_settings()

JWT_ALGORITHM = "HS256"


def _extract_token(request: Request) -> str | None:
    """Session cookie first, then Authorization: Bearer."""
    session_token = request.cookies.get("session")
    if session_token:
        return session_token

    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def get_user_from_token(token: str, db: AsyncSession) -> User | None:
    """Resolve a signed session token to a user row."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[JWT_ALGORITHM])
        user_id = payload.get("sub")
        if not user_id:
            return None

        result = await db.execute(select(User).where(User.id == UUID(user_id)))
        return result.scalar_one_or_none()
    except (JWTError, ValueError) as e:
        logger.debug(
            "session_token_invalid",
            error_type=type(e).__name__,
        )
        return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user from session cookie or Bearer token.

    Raises:
        HTTPException: 401 if not authenticated, 403 if user is disabled
    """
    token = _extract_token(request)
    user = await get_user_from_token(token, db) if token else None

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return user


async def get_current_admin_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get current user if they have the platform admin role."""
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


def get_user_roles(user: User) -> frozenset[UserRole]:
    """Platform roles of the acting user, as consumed by visibility checks."""
    return frozenset({user.role})
