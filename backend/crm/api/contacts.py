"""Contact API endpoints: search, CRUD, attributes and change history."""

import json
from uuid import UUID

from fastapi import APIRouter, Query, Request, status

from crm.api.deps import CurrentUser, DbSession, require_team_access
from crm.config import get_settings
from crm.core.exceptions import FilterValidationError
from crm.core.logging import get_logger
from crm.core.rate_limit import crud_limit, limiter, search_limit
from crm.models.contact import Contact
from crm.models.user import User, UserRole
from crm.schemas.base import CountResponse
from crm.schemas.contact import (
    AttributeKeysResponse,
    ContactAttributeResponse,
    ContactChangeLogResponse,
    ContactCreate,
    ContactDetail,
    ContactListResponse,
    ContactResponse,
    ContactsDeleteRequest,
    ContactSearchRequest,
    ContactUpdate,
)
from crm.services.contact_filter_service import ContactFilterService
from crm.services.contact_service import ContactService, attribute_value
from crm.services.group_service import GroupService, hidden_contact_fields

settings = get_settings()
logger = get_logger(__name__)

router = APIRouter(prefix="/contacts", tags=["contacts"])


def _decode_filters(raw: str | None) -> list | None:
    """Decode the ``filters`` query parameter (a JSON array)."""
    if raw is None or not raw.strip():
        return None
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FilterValidationError(f"Filters are not valid JSON: {e.msg}") from e
    if not isinstance(decoded, list):
        raise FilterValidationError("Filters must be a JSON array")
    return decoded


async def _contact_detail(
    service: ContactService,
    contact: Contact,
    user: User,
    roles: frozenset[UserRole],
) -> ContactDetail:
    """Contact with the attributes the user's submodules unlock."""
    hidden: set[str] = set()
    if UserRole.ADMIN not in roles:
        submodules = await GroupService(service.db).get_user_contact_submodules(
            user.id, contact.team_id
        )
        hidden = set(hidden_contact_fields(submodules))

    attributes = [
        ContactAttributeResponse(key=a.key, type=a.type, value=attribute_value(a))
        for a in await service.get_attributes(contact.id)
        if a.key not in hidden
    ]
    return ContactDetail(
        **ContactResponse.model_validate(contact).model_dump(),
        attributes=attributes,
    )


async def _search(
    db: DbSession,
    current_user: User,
    data: ContactSearchRequest,
) -> ContactListResponse:
    roles = await require_team_access(db, current_user, data.team_id)
    contacts, total = await ContactFilterService(db).search_contacts(
        data.team_id,
        current_user.id,
        roles,
        query=data.query,
        filters=data.filters,
        limit=data.limit,
        offset=data.offset,
    )
    return ContactListResponse(
        items=[ContactResponse.model_validate(c) for c in contacts],
        total=total,
        limit=min(data.limit, settings.contact_search_limit),
        offset=data.offset,
    )


@router.get("", response_model=ContactListResponse)
@limiter.limit(search_limit)
async def list_contacts(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    team_id: UUID,
    query: str | None = None,
    filters: str | None = Query(None, description="JSON array of contact filters"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> ContactListResponse:
    """List the contacts visible to the caller, newest first."""
    data = ContactSearchRequest(
        team_id=team_id,
        query=query,
        filters=_decode_filters(filters),
        limit=limit,
        offset=offset,
    )
    return await _search(db, current_user, data)


@router.post("/search", response_model=ContactListResponse)
@limiter.limit(search_limit)
async def search_contacts(
    request: Request,
    data: ContactSearchRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> ContactListResponse:
    """Evaluate a query and filter array against the caller's visible contacts."""
    return await _search(db, current_user, data)


@router.get("/attribute-keys", response_model=AttributeKeysResponse)
@limiter.limit(crud_limit)
async def list_attribute_keys(
    request: Request,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> AttributeKeysResponse:
    """Profile attribute keys in use, for building attribute filters."""
    await require_team_access(db, current_user, team_id)
    keys = await ContactService(db).list_attribute_keys(team_id)
    return AttributeKeysResponse(keys=keys)


@router.post("", response_model=ContactDetail, status_code=status.HTTP_201_CREATED)
@limiter.limit(crud_limit)
async def create_contact(
    request: Request,
    data: ContactCreate,
    db: DbSession,
    current_user: CurrentUser,
) -> ContactDetail:
    """Create a new contact."""
    roles = await require_team_access(db, current_user, data.team_id)
    service = ContactService(db)
    contact = await service.create_contact(data, current_user)

    logger.info(
        "contact_created",
        contact_id=contact.id,
        team_id=data.team_id,
        user_id=current_user.id,
    )
    return await _contact_detail(service, contact, current_user, roles)


@router.get("/{contact_id}", response_model=ContactDetail)
@limiter.limit(crud_limit)
async def get_contact(
    request: Request,
    contact_id: UUID,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> ContactDetail:
    """Get a contact with its profile attributes."""
    roles = await require_team_access(db, current_user, team_id)
    service = ContactService(db)
    contact = await service.get_contact(contact_id, team_id, current_user.id, roles)
    return await _contact_detail(service, contact, current_user, roles)


@router.patch("/{contact_id}", response_model=ContactDetail)
@limiter.limit(crud_limit)
async def update_contact(
    request: Request,
    contact_id: UUID,
    team_id: UUID,
    data: ContactUpdate,
    db: DbSession,
    current_user: CurrentUser,
) -> ContactDetail:
    """Update a contact; only the fields sent are changed."""
    roles = await require_team_access(db, current_user, team_id)
    service = ContactService(db)
    contact = await service.update_contact(contact_id, team_id, data, current_user, roles)
    return await _contact_detail(service, contact, current_user, roles)


@router.get("/{contact_id}/change-logs", response_model=list[ContactChangeLogResponse])
@limiter.limit(crud_limit)
async def get_contact_change_logs(
    request: Request,
    contact_id: UUID,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> list[ContactChangeLogResponse]:
    """Change history of a contact, newest first."""
    roles = await require_team_access(db, current_user, team_id)
    logs = await ContactService(db).get_change_logs(contact_id, team_id, current_user.id, roles)
    return [ContactChangeLogResponse.model_validate(entry) for entry in logs]


@router.delete("", response_model=CountResponse)
@limiter.limit(crud_limit)
async def delete_contacts(
    request: Request,
    data: ContactsDeleteRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> CountResponse:
    """Delete contacts of a team; ids the caller cannot see are ignored."""
    roles = await require_team_access(db, current_user, data.team_id)
    count = await ContactService(db).delete_contacts(
        data.team_id, data.ids, current_user.id, roles
    )

    logger.info(
        "contacts_deleted",
        team_id=data.team_id,
        count=count,
        user_id=current_user.id,
    )
    return CountResponse(count=count)
