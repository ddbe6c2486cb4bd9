"""Group administration API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Request, status

from crm.api.deps import CurrentUser, DbSession, require_team_access
from crm.core.logging import get_logger
from crm.core.rate_limit import admin_limit, crud_limit, limiter
from crm.models.group import AppModule, ContactSubmodule
from crm.models.user import UserRole
from crm.schemas.base import CountResponse
from crm.schemas.group import (
    GroupCreate,
    GroupDetailResponse,
    GroupMembershipChange,
    GroupResponse,
    GroupsDeleteRequest,
    GroupUpdate,
    GroupUserResponse,
    GroupUsersRequest,
    ModuleAccessResponse,
    ReconcileRequest,
    ReconcileResponse,
)
from crm.services.group_service import GroupService, hidden_contact_fields

logger = get_logger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get("", response_model=list[GroupResponse])
@limiter.limit(admin_limit)
async def list_groups(
    request: Request,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> list[GroupResponse]:
    """List the groups of a team."""
    await require_team_access(db, current_user, team_id, AppModule.ADMIN)
    groups = await GroupService(db).list_groups(team_id)
    return [GroupResponse.model_validate(g) for g in groups]


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(admin_limit)
async def create_group(
    request: Request,
    data: GroupCreate,
    db: DbSession,
    current_user: CurrentUser,
) -> GroupResponse:
    """Create a group with optional initial members."""
    await require_team_access(db, current_user, data.team_id, AppModule.ADMIN)
    group = await GroupService(db).create_group(
        data.team_id,
        data.name,
        description=data.description,
        can_access_all_contacts=data.can_access_all_contacts,
        user_ids=data.user_ids,
        modules=data.modules,
        contact_submodules=data.contact_submodules,
    )
    return GroupResponse.model_validate(group)


@router.delete("", response_model=CountResponse)
@limiter.limit(admin_limit)
async def delete_groups(
    request: Request,
    data: GroupsDeleteRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CountResponse:
    """Delete groups; contacts they owned become visible to the whole team."""
    await require_team_access(db, current_user, data.team_id, AppModule.ADMIN)
    count = await GroupService(db).delete_groups(data.team_id, data.ids)
    return CountResponse(count=count)


@router.post("/reconcile", response_model=ReconcileResponse)
@limiter.limit(admin_limit)
async def reconcile_default_group(
    request: Request,
    data: ReconcileRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> ReconcileResponse:
    """Repair the team's default group and its membership."""
    await require_team_access(db, current_user, data.team_id, AppModule.ADMIN)
    result = await GroupService(db).reconcile_default_group(data.team_id)

    logger.info(
        "default_group_reconcile_requested",
        team_id=data.team_id,
        user_id=current_user.id,
        created=result.created,
        members_added=result.members_added,
        members_removed=result.members_removed,
    )
    return ReconcileResponse(
        team_id=result.team_id,
        default_group_id=result.group.id,
        created=result.created,
        promoted=result.promoted,
        invariants_repaired=result.invariants_repaired,
        members_added=result.members_added,
        members_removed=result.members_removed,
    )


@router.get("/modules", response_model=ModuleAccessResponse)
@limiter.limit(crud_limit)
async def get_module_access(
    request: Request,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> ModuleAccessResponse:
    """Modules and contact submodules available to the caller in a team."""
    roles = await require_team_access(db, current_user, team_id, module=None)
    service = GroupService(db)

    if UserRole.ADMIN in roles:
        modules = list(AppModule)
        submodules = list(ContactSubmodule)
    else:
        modules = await service.get_user_module_access(current_user.id, team_id)
        submodules = await service.get_user_contact_submodules(current_user.id, team_id)

    return ModuleAccessResponse(
        team_id=team_id,
        modules=modules,
        contact_submodules=submodules,
        hidden_contact_fields=hidden_contact_fields(submodules),
    )


@router.get("/{group_id}", response_model=GroupDetailResponse)
@limiter.limit(admin_limit)
async def get_group(
    request: Request,
    group_id: UUID,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> GroupDetailResponse:
    """Get a group with its members."""
    await require_team_access(db, current_user, team_id, AppModule.ADMIN)
    group, users = await GroupService(db).get_group_with_users(group_id, team_id)
    return GroupDetailResponse(
        **GroupResponse.model_validate(group).model_dump(),
        users=[GroupUserResponse.model_validate(u) for u in users],
    )


@router.patch("/{group_id}", response_model=GroupResponse)
@limiter.limit(admin_limit)
async def update_group(
    request: Request,
    group_id: UUID,
    data: GroupUpdate,
    db: DbSession,
    current_user: CurrentUser,
) -> GroupResponse:
    """Update a group; the default group keeps full contact access."""
    await require_team_access(db, current_user, data.team_id, AppModule.ADMIN)
    group = await GroupService(db).update_group(
        group_id,
        data.team_id,
        name=data.name,
        description=data.description,
        can_access_all_contacts=data.can_access_all_contacts,
        modules=data.modules,
        contact_submodules=data.contact_submodules,
    )
    return GroupResponse.model_validate(group)


@router.post("/{group_id}/users", response_model=GroupMembershipChange)
@limiter.limit(admin_limit)
async def add_users_to_group(
    request: Request,
    group_id: UUID,
    data: GroupUsersRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> GroupMembershipChange:
    """Add team users to a group."""
    await require_team_access(db, current_user, data.team_id, AppModule.ADMIN)
    count = await GroupService(db).add_users_to_group(group_id, data.team_id, data.user_ids)
    return GroupMembershipChange(count=count)


@router.delete("/{group_id}/users", response_model=GroupMembershipChange)
@limiter.limit(admin_limit)
async def remove_users_from_group(
    request: Request,
    group_id: UUID,
    data: GroupUsersRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> GroupMembershipChange:
    """Remove users from a group."""
    await require_team_access(db, current_user, data.team_id, AppModule.ADMIN)
    count = await GroupService(db).remove_users_from_group(
        group_id, data.team_id, data.user_ids
    )
    return GroupMembershipChange(count=count)
