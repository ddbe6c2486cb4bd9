"""API dependencies for route protection and common parameters."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.auth import get_current_admin_user, get_current_user, get_user_roles
from crm.core.logging import bind_actor_context, get_logger
from crm.database import DbSession, get_db
from crm.models.group import AppModule
from crm.models.team import TeamMember
from crm.models.user import User, UserRole
from crm.services.group_service import GroupService

# Re-export for convenience
__all__ = [
    "DbSession",
    "CurrentUser",
    "AdminUser",
    "get_db",
    "get_current_user",
    "require_team_access",
]

logger = get_logger(__name__)

# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(get_current_admin_user)]


async def require_team_access(
    db: AsyncSession,
    user: User,
    team_id: UUID,
    module: AppModule | None = AppModule.CRM,
) -> frozenset[UserRole]:
    """Check that the user belongs to the team and holds the module.

    With ``module=None`` only team membership is checked.

    Platform admins pass without membership. Returns the user's roles for
    the visibility checks of the calling endpoint.

    Raises:
        HTTPException: 404 if the user is not in the team, 403 if the
            module is not granted
    """
    roles = get_user_roles(user)
    bind_actor_context(team_id, user.id)

    if UserRole.ADMIN in roles:
        return roles

    result = await db.execute(
        select(TeamMember.id).where(
            TeamMember.team_id == team_id,
            TeamMember.user_id == user.id,
        )
    )
    if result.scalar_one_or_none() is None:
        # Non-members cannot tell a foreign team from a missing one
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Team not found",
        )

    if module is None:
        return roles

    if not await GroupService(db).has_module_access(team_id, user.id, roles, module):
        logger.warning(
            "module_access_denied",
            team_id=team_id,
            user_id=user.id,
            module=module.value,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access to the {module.value} module is not granted",
        )
    return roles
