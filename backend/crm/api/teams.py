"""Team administration API endpoints (platform admins only)."""

from uuid import UUID

from fastapi import APIRouter, Request, status

from crm.api.deps import AdminUser, DbSession
from crm.core.logging import get_logger
from crm.core.rate_limit import admin_limit, limiter
from crm.schemas.team import (
    TeamCreate,
    TeamMembershipResponse,
    TeamResponse,
    TeamUserAdd,
)
from crm.services.group_service import DefaultGroupReconciliation
from crm.services.team_service import TeamService

logger = get_logger(__name__)

router = APIRouter(prefix="/teams", tags=["teams"])


def _membership_response(
    user_id: UUID, result: DefaultGroupReconciliation
) -> TeamMembershipResponse:
    return TeamMembershipResponse(
        team_id=result.team_id,
        user_id=user_id,
        default_group_id=result.group.id,
        members_added=result.members_added,
        members_removed=result.members_removed,
    )


@router.post("", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(admin_limit)
async def create_team(
    request: Request,
    data: TeamCreate,
    db: DbSession,
    admin_user: AdminUser,
) -> TeamResponse:
    """Create a team with its default group."""
    team = await TeamService(db).create_team(
        data.name,
        modules=data.modules,
        member_ids=data.member_ids,
    )
    logger.info("team_created_by_admin", team_id=team.id, admin_id=admin_user.id)
    return TeamResponse.model_validate(team)


@router.post("/{team_id}/users", response_model=TeamMembershipResponse)
@limiter.limit(admin_limit)
async def add_team_user(
    request: Request,
    team_id: UUID,
    data: TeamUserAdd,
    db: DbSession,
    admin_user: AdminUser,
) -> TeamMembershipResponse:
    """Add a user to a team; they land in the default group until assigned."""
    result = await TeamService(db).add_user_to_team(team_id, data.user_id)
    return _membership_response(data.user_id, result)


@router.delete("/{team_id}/users/{user_id}", response_model=TeamMembershipResponse)
@limiter.limit(admin_limit)
async def remove_team_user(
    request: Request,
    team_id: UUID,
    user_id: UUID,
    db: DbSession,
    admin_user: AdminUser,
) -> TeamMembershipResponse:
    """Remove a user from a team together with their group memberships."""
    result = await TeamService(db).remove_user_from_team(team_id, user_id)
    return _membership_response(user_id, result)
