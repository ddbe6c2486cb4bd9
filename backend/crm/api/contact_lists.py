"""Contact list API endpoints (manual and smart lists)."""

from uuid import UUID

from fastapi import APIRouter, Request, status

from crm.api.deps import CurrentUser, DbSession, require_team_access
from crm.core.logging import get_logger
from crm.core.rate_limit import crud_limit, limiter, search_limit
from crm.models.contact_list import ContactList
from crm.schemas.base import CountResponse
from crm.schemas.contact import ContactResponse
from crm.schemas.contact_list import (
    ContactListCreate,
    ContactListDetail,
    ContactListMembersRequest,
    ContactListResponse,
    ContactListsDeleteRequest,
    ContactListUpdate,
    MembershipChangeResponse,
)
from crm.services.contact_list_service import ContactListService, ContactListView

logger = get_logger(__name__)

router = APIRouter(prefix="/contact-lists", tags=["contact-lists"])


def _list_response(contact_list: ContactList, contact_count: int) -> ContactListResponse:
    return ContactListResponse(
        id=contact_list.id,
        team_id=contact_list.team_id,
        name=contact_list.name,
        description=contact_list.description,
        type=contact_list.type,
        filters=contact_list.filters,
        contact_count=contact_count,
        created_at=contact_list.created_at,
        updated_at=contact_list.updated_at,
    )


def _list_detail(view: ContactListView) -> ContactListDetail:
    return ContactListDetail(
        **_list_response(view.contact_list, view.contact_count).model_dump(),
        contacts=[ContactResponse.model_validate(c) for c in view.contacts],
    )


@router.get("", response_model=list[ContactListResponse])
@limiter.limit(search_limit)
async def list_contact_lists(
    request: Request,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> list[ContactListResponse]:
    """List a team's contact lists with the member count visible to the caller."""
    roles = await require_team_access(db, current_user, team_id)
    views = await ContactListService(db).list_lists(team_id, current_user.id, roles)
    return [_list_response(v.contact_list, v.contact_count) for v in views]


@router.post("", response_model=ContactListResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(crud_limit)
async def create_contact_list(
    request: Request,
    data: ContactListCreate,
    db: DbSession,
    current_user: CurrentUser,
) -> ContactListResponse:
    """Create a manual list (optionally seeded) or a smart list."""
    roles = await require_team_access(db, current_user, data.team_id)
    service = ContactListService(db)
    contact_list = await service.create_list(
        data.team_id,
        data.name,
        description=data.description,
        list_type=data.type,
        filters=data.filters,
        contact_ids=data.contact_ids,
        user_id=current_user.id,
        roles=roles,
    )
    count = await service.count_list_contacts(contact_list, current_user.id, roles)
    return _list_response(contact_list, count)


@router.delete("", response_model=CountResponse)
@limiter.limit(crud_limit)
async def delete_contact_lists(
    request: Request,
    data: ContactListsDeleteRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CountResponse:
    """Delete lists of a team; ids outside the team are ignored."""
    await require_team_access(db, current_user, data.team_id)
    count = await ContactListService(db).delete_lists(data.team_id, data.ids)
    return CountResponse(count=count)


@router.get("/{list_id}", response_model=ContactListDetail)
@limiter.limit(search_limit)
async def get_contact_list(
    request: Request,
    list_id: UUID,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> ContactListDetail:
    """Get a list with its contacts; smart lists are evaluated live."""
    roles = await require_team_access(db, current_user, team_id)
    view = await ContactListService(db).get_list(list_id, team_id, current_user.id, roles)
    return _list_detail(view)


@router.patch("/{list_id}", response_model=ContactListResponse)
@limiter.limit(crud_limit)
async def update_contact_list(
    request: Request,
    list_id: UUID,
    data: ContactListUpdate,
    db: DbSession,
    current_user: CurrentUser,
) -> ContactListResponse:
    """Update a list's name, description, type or filters."""
    roles = await require_team_access(db, current_user, data.team_id)
    service = ContactListService(db)
    contact_list = await service.update_list(
        list_id,
        data.team_id,
        name=data.name,
        description=data.description,
        list_type=data.type,
        filters=data.filters,
    )
    count = await service.count_list_contacts(contact_list, current_user.id, roles)
    return _list_response(contact_list, count)


@router.post("/{list_id}/contacts", response_model=MembershipChangeResponse)
@limiter.limit(crud_limit)
async def add_contacts_to_list(
    request: Request,
    list_id: UUID,
    data: ContactListMembersRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> MembershipChangeResponse:
    """Add contacts to a manual list; contacts the caller cannot see are ignored."""
    roles = await require_team_access(db, current_user, data.team_id)
    count = await ContactListService(db).add_contacts_to_list(
        list_id, data.team_id, data.contact_ids, current_user.id, roles
    )
    return MembershipChangeResponse(count=count)


@router.delete("/{list_id}/contacts", response_model=MembershipChangeResponse)
@limiter.limit(crud_limit)
async def remove_contacts_from_list(
    request: Request,
    list_id: UUID,
    data: ContactListMembersRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> MembershipChangeResponse:
    """Remove contacts from a manual list; contacts the caller cannot see are ignored."""
    roles = await require_team_access(db, current_user, data.team_id)
    count = await ContactListService(db).remove_contacts_from_list(
        list_id, data.team_id, data.contact_ids, current_user.id, roles
    )
    return MembershipChangeResponse(count=count)
