"""Events, event roles and visibility-filtered participant listings."""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import InvariantViolationError, NotFoundError
from crm.core.logging import get_logger
from crm.models.contact import Contact
from crm.models.event import Event, EventContact, EventContactRole, EventRole
from crm.models.user import UserRole
from crm.query.predicates import Compare, CompareOp, and_
from crm.query.sql import compile_predicate
from crm.schemas.event import EventParticipantInput
from crm.services.visibility_service import VisibilityService

logger = get_logger(__name__)


@dataclass
class EventParticipant:
    contact: Contact
    roles: list[EventRole] = field(default_factory=list)


class EventService:
    """Service for events and their participants."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_events(self, team_id: UUID) -> list[Event]:
        result = await self.db.execute(
            select(Event)
            .where(Event.team_id == team_id)
            .order_by(Event.start_date.desc(), Event.id)
        )
        return list(result.scalars().all())

    async def get_event(self, event_id: UUID, team_id: UUID) -> Event:
        result = await self.db.execute(
            select(Event).where(Event.id == event_id, Event.team_id == team_id)
        )
        event = result.scalar_one_or_none()
        if event is None:
            raise NotFoundError("Event", event_id)
        return event

    async def create_event(
        self,
        team_id: UUID,
        title: str,
        start_date: datetime,
        description: str | None = None,
        location: str | None = None,
        end_date: datetime | None = None,
        participants: Sequence[EventParticipantInput] = (),
    ) -> Event:
        """Create an event with participants and their roles.

        Contacts and roles that do not belong to the team are ignored.
        """
        event = Event(
            team_id=team_id,
            title=title.strip(),
            description=description,
            location=location,
            start_date=start_date,
            end_date=end_date,
        )
        self.db.add(event)
        await self.db.flush()

        contact_ids = [p.contact_id for p in participants]
        role_ids = [rid for p in participants for rid in p.role_ids]
        valid_contacts = await self._team_ids(Contact, team_id, contact_ids)
        valid_roles = await self._team_ids(EventRole, team_id, role_ids)

        added: set[UUID] = set()
        for participant in participants:
            if participant.contact_id not in valid_contacts or participant.contact_id in added:
                continue
            added.add(participant.contact_id)

            event_contact = EventContact(event_id=event.id, contact_id=participant.contact_id)
            self.db.add(event_contact)
            await self.db.flush()

            for role_id in dict.fromkeys(participant.role_ids):
                if role_id in valid_roles:
                    self.db.add(
                        EventContactRole(event_contact_id=event_contact.id, event_role_id=role_id)
                    )
        await self.db.flush()

        logger.info(
            "event_created",
            team_id=team_id,
            event_id=event.id,
            participants=len(added),
            ignored=len(participants) - len(added),
        )
        return event

    async def list_event_roles(self, team_id: UUID) -> list[EventRole]:
        result = await self.db.execute(
            select(EventRole).where(EventRole.team_id == team_id).order_by(EventRole.name)
        )
        return list(result.scalars().all())

    async def create_event_role(
        self, team_id: UUID, name: str, color: str | None = None
    ) -> EventRole:
        """Create an event role.

        Raises:
            InvariantViolationError: If the team already has a role with the name
        """
        role = EventRole(team_id=team_id, name=name.strip(), color=color)
        try:
            async with self.db.begin_nested():
                self.db.add(role)
        except IntegrityError as e:
            raise InvariantViolationError(f"Event role '{role.name}' already exists") from e

        logger.info("event_role_created", team_id=team_id, event_role_id=role.id)
        return role

    async def get_event_participants(
        self,
        event_id: UUID,
        team_id: UUID,
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> list[EventParticipant]:
        """Participants of an event the user may see, with their roles.

        Raises:
            NotFoundError: If the event does not exist in the team
        """
        event = await self.get_event(event_id, team_id)
        visibility = await VisibilityService(self.db).resolve_contact_visibility(
            team_id, user_id, roles
        )
        predicate = and_(Compare("team_id", CompareOp.EQ, team_id), visibility)

        result = await self.db.execute(
            select(EventContact.id, Contact)
            .join(Contact, Contact.id == EventContact.contact_id)
            .where(EventContact.event_id == event.id, compile_predicate(predicate))
            .order_by(Contact.name, Contact.id)
        )
        rows = result.all()
        if not rows:
            return []

        roles_result = await self.db.execute(
            select(EventContactRole.event_contact_id, EventRole)
            .join(EventRole, EventRole.id == EventContactRole.event_role_id)
            .where(EventContactRole.event_contact_id.in_([row[0] for row in rows]))
            .order_by(EventRole.name)
        )
        roles_by_participant: dict[UUID, list[EventRole]] = defaultdict(list)
        for participant_id, role in roles_result.all():
            roles_by_participant[participant_id].append(role)

        return [
            EventParticipant(contact=contact, roles=roles_by_participant[participant_id])
            for participant_id, contact in rows
        ]

    async def _team_ids(self, model, team_id: UUID, ids: Sequence[UUID]) -> set[UUID]:
        if not ids:
            return set()
        result = await self.db.execute(
            select(model.id).where(model.team_id == team_id, model.id.in_(list(set(ids))))
        )
        return set(result.scalars().all())
