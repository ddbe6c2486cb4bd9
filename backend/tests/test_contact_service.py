"""Tests for ContactService and attribute normalization."""

import json
from datetime import UTC, datetime
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from crm.core.exceptions import InvariantViolationError, NotFoundError
from crm.models.contact import ChangeAction, ContactAttribute, ContactAttributeType
from crm.models.contact_list import ContactListMember
from crm.models.event import EventContact
from crm.models.user import UserRole
from crm.schemas.contact import (
    ContactAttributeInput,
    ContactCreate,
    ContactLocationValue,
    ContactUpdate,
)
from crm.services.contact_service import (
    ContactService,
    attribute_value,
    normalize_attributes,
)


def attr(key, value, type_=ContactAttributeType.STRING):
    return ContactAttributeInput(key=key, type=type_, value=value)


class TestNormalizeAttributes:
    """Tests for normalize_attributes."""

    def test_trims_and_drops_empty(self):
        result = normalize_attributes([attr(" skill ", " welding "), attr("hobby", "   ")])

        assert [(a.key, a.string_value) for a in result] == [("skill", "welding")]

    def test_first_key_wins(self):
        result = normalize_attributes([attr("skill", "welding"), attr("skill", "sewing")])

        assert [a.string_value for a in result] == ["welding"]

    def test_invalid_first_value_does_not_claim_key(self):
        result = normalize_attributes(
            [
                attr("age", "old", ContactAttributeType.NUMBER),
                attr("age", "42", ContactAttributeType.NUMBER),
            ]
        )

        assert [(a.number_value, a.string_value) for a in result] == [(42.0, "42")]

    def test_number_text_form(self):
        (item,) = normalize_attributes([attr("height", 1.85, ContactAttributeType.NUMBER)])

        assert item.number_value == 1.85
        assert item.string_value == "1.85"

    def test_date_is_utc(self):
        (item,) = normalize_attributes(
            [attr("joined", "2024-03-05T12:00:00+02:00", ContactAttributeType.DATE)]
        )

        assert item.date_value == datetime(2024, 3, 5, 10, tzinfo=UTC)
        assert item.string_value == "2024-03-05T10:00:00+00:00"

    def test_invalid_date_is_dropped(self):
        assert normalize_attributes([attr("joined", "yesterday", ContactAttributeType.DATE)]) == []

    def test_location(self):
        (item,) = normalize_attributes(
            [
                attr(
                    "office",
                    ContactLocationValue(label=" Berlin ", latitude=52.52, longitude=13.405),
                    ContactAttributeType.LOCATION,
                )
            ]
        )

        assert item.location_label == "Berlin"
        assert (item.latitude, item.longitude) == (52.52, 13.405)

    def test_empty_location_is_dropped(self):
        empty = attr("office", ContactLocationValue(label="  "), ContactAttributeType.LOCATION)
        assert normalize_attributes([empty]) == []


class TestCreateContact:
    """Tests for create_contact."""

    @pytest.mark.asyncio
    async def test_normalizes_and_logs_creation(self, db, factory):
        team = await factory.team()
        user = await factory.user("Ada Admin")
        service = ContactService(db)

        contact = await service.create_contact(
            ContactCreate(
                team_id=team.id,
                name=" Grace Hopper ",
                email="grace@hopper.org",
                postal_code=" 10115 ",
                country="Germany",
                attributes=[attr("skill", "compilers")],
            ),
            user,
        )
        logs = await service.get_change_logs(contact.id, team.id)

        assert contact.name == "Grace Hopper"
        assert contact.postal_code == "10115"
        assert contact.country_code == "DE"
        assert [(a.key, attribute_value(a)) for a in await service.get_attributes(contact.id)] == [
            ("skill", "compilers")
        ]
        assert [(log.action, log.user_name) for log in logs] == [
            (ChangeAction.CREATED, "Ada Admin")
        ]

    @pytest.mark.asyncio
    async def test_duplicate_email_in_team(self, db, factory):
        team = await factory.team()
        await factory.contact(team, email="grace@hopper.org")

        with pytest.raises(InvariantViolationError):
            await ContactService(db).create_contact(
                ContactCreate(team_id=team.id, name="Grace", email="grace@hopper.org")
            )

    @pytest.mark.asyncio
    async def test_same_email_in_other_team(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        await factory.contact(other, email="grace@hopper.org")

        contact = await ContactService(db).create_contact(
            ContactCreate(team_id=team.id, name="Grace", email="grace@hopper.org")
        )

        assert contact.team_id == team.id

    @pytest.mark.asyncio
    async def test_group_of_other_team_is_not_found(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        foreign = await factory.group(other)

        with pytest.raises(NotFoundError, match="Group not found"):
            await ContactService(db).create_contact(
                ContactCreate(team_id=team.id, name="Grace", group_id=foreign.id)
            )


class TestUpdateContact:
    """Tests for update_contact."""

    @pytest.mark.asyncio
    async def test_logs_one_entry_per_changed_field(self, db, factory):
        team = await factory.team()
        contact = await factory.contact(team, name="Grace", city="Berlin", phone="123")
        service = ContactService(db)

        await service.update_contact(
            contact.id,
            team.id,
            ContactUpdate(name="Grace Hopper", city="Hamburg", phone="123", country="Austria"),
        )
        logs = await service.get_change_logs(contact.id, team.id)

        updated = {log.field_name: log for log in logs if log.action == ChangeAction.UPDATED}
        assert set(updated) == {"name", "city", "country"}
        assert json.loads(updated["city"].old_value) == "Berlin"
        assert json.loads(updated["city"].new_value) == "Hamburg"
        assert updated["country"].old_value is None
        assert contact.country_code == "AT"

    @pytest.mark.asyncio
    async def test_replacing_attributes_logs_once(self, db, factory):
        team = await factory.team()
        contact = await factory.contact(team)
        service = ContactService(db)

        await service.update_contact(
            contact.id, team.id, ContactUpdate(attributes=[attr("skill", "welding")])
        )
        await service.update_contact(
            contact.id, team.id, ContactUpdate(attributes=[attr("skill", " welding ")])
        )
        logs = await service.get_change_logs(contact.id, team.id)

        assert [log.field_name for log in logs] == ["attributes"]
        assert [a.string_value for a in await service.get_attributes(contact.id)] == ["welding"]

    @pytest.mark.asyncio
    async def test_duplicate_email_is_rejected(self, db, factory):
        team = await factory.team()
        await factory.contact(team, email="taken@hopper.org")
        contact = await factory.contact(team, email="grace@hopper.org")

        with pytest.raises(InvariantViolationError):
            await ContactService(db).update_contact(
                contact.id, team.id, ContactUpdate(email="taken@hopper.org")
            )

    @pytest.mark.asyncio
    async def test_invisible_contact_cannot_be_updated(self, db, factory):
        team = await factory.team()
        user = await factory.user()
        restricted = await factory.group(team)
        contact = await factory.contact(team, group=restricted)

        with pytest.raises(NotFoundError):
            await ContactService(db).update_contact(
                contact.id, team.id, ContactUpdate(name="Renamed"), user, [UserRole.USER]
            )


class TestGetContact:
    """Tests for get_contact visibility."""

    @pytest.mark.asyncio
    async def test_visible_through_group(self, db, factory):
        team = await factory.team()
        user = await factory.user()
        group = await factory.group(team, users=[user])
        contact = await factory.contact(team, group=group)

        found = await ContactService(db).get_contact(contact.id, team.id, user.id, [UserRole.USER])

        assert found.id == contact.id

    @pytest.mark.asyncio
    async def test_invisible_is_not_found(self, db, factory):
        team = await factory.team()
        user = await factory.user()
        restricted = await factory.group(team)
        contact = await factory.contact(team, group=restricted)
        service = ContactService(db)

        with pytest.raises(NotFoundError):
            await service.get_contact(contact.id, team.id, user.id, [UserRole.USER])
        with pytest.raises(NotFoundError):
            await service.get_change_logs(contact.id, team.id, user.id, [UserRole.USER])

    @pytest.mark.asyncio
    async def test_other_team_is_not_found(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        contact = await factory.contact(other)

        with pytest.raises(NotFoundError):
            await ContactService(db).get_contact(contact.id, team.id)


class TestDeleteContacts:
    """Tests for delete_contacts."""

    @pytest.mark.asyncio
    async def test_removes_dependent_rows(self, db, factory):
        team = await factory.team()
        other = await factory.team("B")
        contact = await factory.contact(team)
        foreign = await factory.contact(other)
        role = await factory.event_role(team)
        await factory.participation(team, contact, [role])
        await factory.contact_list(team, members=[contact])
        db.add(ContactAttribute(contact_id=contact.id, key="skill", string_value="welding"))
        await db.flush()

        deleted = await ContactService(db).delete_contacts(team.id, [contact.id, foreign.id, uuid4()])

        members = await db.execute(select(func.count()).select_from(ContactListMember))
        participants = await db.execute(select(func.count()).select_from(EventContact))
        assert deleted == 1
        assert members.scalar_one() == 0
        assert participants.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_ignores_contacts_outside_visibility(self, db, factory, restricted_reader):
        team, reader, own, other = restricted_reader
        mine = await factory.contact(team, group=own)
        hidden = await factory.contact(team, group=other)
        service = ContactService(db)

        deleted = await service.delete_contacts(
            team.id, [mine.id, hidden.id], reader.id, frozenset({UserRole.USER})
        )

        assert deleted == 1
        assert (await service.get_contact(hidden.id, team.id)).id == hidden.id


class TestAttributeKeys:
    """Tests for list_attribute_keys."""

    @pytest.mark.asyncio
    async def test_distinct_sorted_per_team(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        a = await factory.contact(team)
        b = await factory.contact(team)
        c = await factory.contact(other)
        db.add_all(
            [
                ContactAttribute(contact_id=a.id, key="skill", string_value="x"),
                ContactAttribute(contact_id=b.id, key="skill", string_value="y"),
                ContactAttribute(contact_id=b.id, key="age", string_value="3"),
                ContactAttribute(contact_id=c.id, key="secret", string_value="z"),
            ]
        )
        await db.flush()

        assert await ContactService(db).list_attribute_keys(team.id) == ["age", "skill"]
