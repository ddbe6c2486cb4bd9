"""Tests for contact list API endpoints."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest

from crm.api.contact_lists import router
from crm.core.exceptions import InvariantViolationError
from crm.models.contact import Contact
from crm.models.contact_list import ContactList, ContactListType
from crm.models.user import UserRole
from crm.services.contact_list_service import SMART_LIST_MUTATION_ERROR, ContactListView

NOW = datetime(2024, 1, 1, tzinfo=UTC)


def make_list(team_id, **fields):
    defaults = {
        "id": uuid4(),
        "team_id": team_id,
        "name": "Volunteers",
        "type": ContactListType.MANUAL,
        "filters": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    defaults.update(fields)
    return ContactList(**defaults)


@pytest.fixture
def client(api_client):
    return api_client(router)


@pytest.fixture
def team_access():
    with patch(
        "crm.api.contact_lists.require_team_access",
        AsyncMock(return_value=frozenset({UserRole.USER})),
    ) as mock:
        yield mock


class TestContactListEndpoints:
    """Tests for /api/v1/contact-lists."""

    def test_list_includes_visible_counts(self, client, team_access):
        team_id = uuid4()
        views = [ContactListView(contact_list=make_list(team_id), contact_count=4)]

        with patch("crm.api.contact_lists.ContactListService") as service_cls:
            service_cls.return_value.list_lists = AsyncMock(return_value=views)
            response = client.get("/api/v1/contact-lists", params={"team_id": str(team_id)})

        assert response.status_code == 200
        assert [item["contact_count"] for item in response.json()] == [4]

    def test_create_smart_list(self, client, team_access):
        team_id = uuid4()
        filters = [{"type": "group", "groupId": str(uuid4())}]
        created = make_list(team_id, name="Smart", type=ContactListType.SMART, filters=filters)

        with patch("crm.api.contact_lists.ContactListService") as service_cls:
            service_cls.return_value.create_list = AsyncMock(return_value=created)
            service_cls.return_value.count_list_contacts = AsyncMock(return_value=3)
            response = client.post(
                "/api/v1/contact-lists",
                json={"team_id": str(team_id), "name": "Smart", "type": "SMART", "filters": filters},
            )

        assert response.status_code == 201
        assert response.json()["type"] == "SMART"
        assert response.json()["filters"] == filters
        assert response.json()["contact_count"] == 3
        call = service_cls.return_value.create_list.call_args
        assert call.kwargs["list_type"] == ContactListType.SMART

    def test_get_returns_contacts(self, client, team_access):
        team_id = uuid4()
        contact = Contact(
            id=uuid4(), team_id=team_id, name="Ada", created_at=NOW, updated_at=NOW
        )
        view = ContactListView(contact_list=make_list(team_id), contact_count=1, contacts=[contact])

        with patch("crm.api.contact_lists.ContactListService") as service_cls:
            service_cls.return_value.get_list = AsyncMock(return_value=view)
            response = client.get(
                f"/api/v1/contact-lists/{view.contact_list.id}", params={"team_id": str(team_id)}
            )

        assert response.status_code == 200
        assert [c["name"] for c in response.json()["contacts"]] == ["Ada"]

    def test_smart_list_membership_change_conflicts(self, client, team_access):
        with patch("crm.api.contact_lists.ContactListService") as service_cls:
            service_cls.return_value.add_contacts_to_list = AsyncMock(
                side_effect=InvariantViolationError(SMART_LIST_MUTATION_ERROR)
            )
            response = client.post(
                f"/api/v1/contact-lists/{uuid4()}/contacts",
                json={"team_id": str(uuid4()), "contact_ids": [str(uuid4())]},
            )

        assert response.status_code == 409
        assert response.json()["message"] == SMART_LIST_MUTATION_ERROR

    def test_remove_contacts_returns_count(self, client, team_access):
        with patch("crm.api.contact_lists.ContactListService") as service_cls:
            service_cls.return_value.remove_contacts_from_list = AsyncMock(return_value=1)
            response = client.request(
                "DELETE",
                f"/api/v1/contact-lists/{uuid4()}/contacts",
                json={"team_id": str(uuid4()), "contact_ids": [str(uuid4())]},
            )

        assert response.status_code == 200
        assert response.json() == {"count": 1}


class TestContactCountsOnWrite:
    """Counts returned by create and update, computed on a real session."""

    @pytest.mark.asyncio
    async def test_create_and_update_report_visible_count(
        self, session_client, factory, restricted_reader
    ):
        team, reader, own, other = restricted_reader
        mine = await factory.contact(team, group=own)
        ownerless = await factory.contact(team)
        hidden = await factory.contact(team, group=other)
        seed = [str(mine.id), str(ownerless.id), str(hidden.id)]

        async with session_client(reader, router) as client:
            manual = await client.post(
                "/api/v1/contact-lists",
                json={"team_id": str(team.id), "name": "Manual", "contact_ids": seed},
            )
            smart = await client.post(
                "/api/v1/contact-lists",
                json={"team_id": str(team.id), "name": "Smart", "type": "SMART", "filters": []},
            )
            renamed = await client.patch(
                f"/api/v1/contact-lists/{manual.json()['id']}",
                json={"team_id": str(team.id), "name": "Renamed"},
            )
            listed = await client.get("/api/v1/contact-lists", params={"team_id": str(team.id)})

        assert manual.status_code == 201
        assert manual.json()["contact_count"] == 2
        assert smart.status_code == 201
        assert smart.json()["contact_count"] == 2
        assert renamed.status_code == 200
        assert renamed.json()["contact_count"] == 2
        assert sorted(item["contact_count"] for item in listed.json()) == [2, 2]

    @pytest.mark.asyncio
    async def test_hidden_contacts_cannot_be_added(
        self, session_client, factory, restricted_reader
    ):
        team, reader, own, other = restricted_reader
        hidden = await factory.contact(team, group=other)
        contact_list = await factory.contact_list(team)

        async with session_client(reader, router) as client:
            response = await client.post(
                f"/api/v1/contact-lists/{contact_list.id}/contacts",
                json={"team_id": str(team.id), "contact_ids": [str(hidden.id)]},
            )

        assert response.status_code == 200
        assert response.json() == {"count": 0}
