"""Event and event role API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Request, status

from crm.api.deps import CurrentUser, DbSession, require_team_access
from crm.core.rate_limit import crud_limit, limiter
from crm.schemas.contact import ContactResponse
from crm.schemas.event import (
    EventCreate,
    EventParticipantResponse,
    EventResponse,
    EventRoleCreate,
    EventRoleResponse,
)
from crm.services.event_service import EventService

router = APIRouter(prefix="/events", tags=["events"])
roles_router = APIRouter(prefix="/event-roles", tags=["events"])


@router.get("", response_model=list[EventResponse])
@limiter.limit(crud_limit)
async def list_events(
    request: Request,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> list[EventResponse]:
    """List a team's events, latest first."""
    await require_team_access(db, current_user, team_id)
    events = await EventService(db).list_events(team_id)
    return [EventResponse.model_validate(e) for e in events]


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(crud_limit)
async def create_event(
    request: Request,
    data: EventCreate,
    db: DbSession,
    current_user: CurrentUser,
) -> EventResponse:
    """Create an event with its participants and their roles."""
    await require_team_access(db, current_user, data.team_id)
    event = await EventService(db).create_event(
        data.team_id,
        data.title,
        data.start_date,
        description=data.description,
        location=data.location,
        end_date=data.end_date,
        participants=data.participants,
    )
    return EventResponse.model_validate(event)


@router.get("/{event_id}/participants", response_model=list[EventParticipantResponse])
@limiter.limit(crud_limit)
async def list_event_participants(
    request: Request,
    event_id: UUID,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> list[EventParticipantResponse]:
    """Participants of an event that the caller is allowed to see."""
    roles = await require_team_access(db, current_user, team_id)
    participants = await EventService(db).get_event_participants(
        event_id, team_id, current_user.id, roles
    )
    return [
        EventParticipantResponse(
            contact=ContactResponse.model_validate(p.contact),
            roles=[EventRoleResponse.model_validate(r) for r in p.roles],
        )
        for p in participants
    ]


@roles_router.get("", response_model=list[EventRoleResponse])
@limiter.limit(crud_limit)
async def list_event_roles(
    request: Request,
    team_id: UUID,
    db: DbSession,
    current_user: CurrentUser,
) -> list[EventRoleResponse]:
    """List a team's event roles."""
    await require_team_access(db, current_user, team_id)
    event_roles = await EventService(db).list_event_roles(team_id)
    return [EventRoleResponse.model_validate(r) for r in event_roles]


@roles_router.post("", response_model=EventRoleResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(crud_limit)
async def create_event_role(
    request: Request,
    data: EventRoleCreate,
    db: DbSession,
    current_user: CurrentUser,
) -> EventRoleResponse:
    """Create an event role; names are unique per team."""
    await require_team_access(db, current_user, data.team_id)
    event_role = await EventService(db).create_event_role(data.team_id, data.name, data.color)
    return EventRoleResponse.model_validate(event_role)
