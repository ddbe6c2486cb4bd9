"""Tests for EventService."""

from datetime import UTC, datetime
from uuid import uuid4

import pytest

from crm.core.exceptions import InvariantViolationError, NotFoundError
from crm.models.user import UserRole
from crm.schemas.event import EventParticipantInput
from crm.services.event_service import EventService

START = datetime(2024, 5, 1, 18, 0, tzinfo=UTC)


class TestCreateEvent:
    """Tests for create_event."""

    @pytest.mark.asyncio
    async def test_ignores_foreign_contacts_and_roles(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        ada = await factory.contact(team, name="Ada")
        foreign = await factory.contact(other, name="Foreign")
        speaker = await factory.event_role(team, "Speaker")
        foreign_role = await factory.event_role(other, "Speaker")
        service = EventService(db)

        event = await service.create_event(
            team.id,
            " Assembly ",
            START,
            participants=[
                EventParticipantInput(contact_id=ada.id, role_ids=[speaker.id, foreign_role.id]),
                EventParticipantInput(contact_id=ada.id),
                EventParticipantInput(contact_id=foreign.id, role_ids=[speaker.id]),
            ],
        )
        participants = await service.get_event_participants(event.id, team.id)

        assert event.title == "Assembly"
        assert [p.contact.name for p in participants] == ["Ada"]
        assert [r.id for r in participants[0].roles] == [speaker.id]


class TestEventRoles:
    """Tests for event roles."""

    @pytest.mark.asyncio
    async def test_duplicate_name_is_rejected(self, db, factory):
        team = await factory.team()
        service = EventService(db)
        await service.create_event_role(team.id, "Speaker", color="#ff0000")

        with pytest.raises(InvariantViolationError, match="already exists"):
            await service.create_event_role(team.id, " Speaker ")

        assert [r.name for r in await service.list_event_roles(team.id)] == ["Speaker"]

    @pytest.mark.asyncio
    async def test_same_name_in_other_team(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        service = EventService(db)

        await service.create_event_role(team.id, "Speaker")
        role = await service.create_event_role(other.id, "Speaker")

        assert role.team_id == other.id


class TestEventParticipants:
    """Participant listings respect contact visibility."""

    @pytest.mark.asyncio
    async def test_hides_invisible_participants(self, db, factory):
        team = await factory.team()
        user = await factory.user()
        restricted = await factory.group(team)
        role = await factory.event_role(team)
        visible = await factory.contact(team, name="Ownerless")
        hidden = await factory.contact(team, name="Restricted", group=restricted)
        service = EventService(db)
        event = await service.create_event(
            team.id,
            "Assembly",
            START,
            participants=[
                EventParticipantInput(contact_id=visible.id, role_ids=[role.id]),
                EventParticipantInput(contact_id=hidden.id),
            ],
        )

        as_user = await service.get_event_participants(event.id, team.id, user.id, [UserRole.USER])
        as_admin = await service.get_event_participants(
            event.id, team.id, user.id, [UserRole.ADMIN]
        )

        assert [p.contact.name for p in as_user] == ["Ownerless"]
        assert [p.contact.name for p in as_admin] == ["Ownerless", "Restricted"]
        assert as_admin[1].roles == []

    @pytest.mark.asyncio
    async def test_unknown_event(self, db, factory):
        team = await factory.team()
        with pytest.raises(NotFoundError, match="Event not found"):
            await EventService(db).get_event_participants(uuid4(), team.id)
