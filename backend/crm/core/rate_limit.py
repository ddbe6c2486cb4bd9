"""Rate limiting configuration using slowapi."""

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from crm.config import get_settings
from crm.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()


def get_rate_limit_key(request: Request) -> str:
    """Rate limit per session user when authenticated, per IP otherwise."""
    session_token = request.cookies.get("session")
    if session_token:
        try:
            payload = jwt.decode(
                session_token,
                settings.secret_key,
                algorithms=["HS256"],
            )
        except JWTError as e:
            logger.debug(
                "rate_limit_key_fallback_to_ip",
                error_type=type(e).__name__,
            )
        else:
            user_id = payload.get("sub")
            if user_id:
                return f"user:{user_id}"

    return get_remote_address(request)


# headers_enabled=False: slowapi cannot inject headers into endpoints that
# return Pydantic models directly.
limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    headers_enabled=False,
    enabled=settings.rate_limit_enabled,
    default_limits=[settings.rate_limit_default],
)


def search_limit() -> str:
    """Get contact search / list evaluation rate limit."""
    return settings.rate_limit_search


def crud_limit() -> str:
    """Get CRUD endpoint rate limit."""
    return settings.rate_limit_crud


def admin_limit() -> str:
    """Get group administration rate limit."""
    return settings.rate_limit_admin
