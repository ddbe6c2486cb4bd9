"""Tests for ChangeLogService."""

from uuid import UUID

import pytest

from crm.models.contact import ChangeAction
from crm.services.change_log_service import ChangeLogService, encode_value


class TestComputeDiff:
    """Tests for compute_diff."""

    def test_only_new_keys_are_compared(self):
        diff = ChangeLogService.compute_diff(
            {"name": "Ada", "city": "Berlin"},
            {"name": "Ada Lovelace"},
        )

        assert diff == {"name": {"old": "Ada", "new": "Ada Lovelace"}}

    def test_unchanged_is_empty(self):
        assert ChangeLogService.compute_diff({"city": "Berlin"}, {"city": "Berlin"}) == {}

    def test_missing_old_value_is_none(self):
        diff = ChangeLogService.compute_diff({}, {"phone": "123"})

        assert diff == {"phone": {"old": None, "new": "123"}}


class TestEncodeValue:
    """Tests for encode_value."""

    def test_none_stays_none(self):
        assert encode_value(None) is None

    def test_json_encodes(self):
        assert encode_value("Berlin") == '"Berlin"'
        assert encode_value({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'

    def test_uuid_is_stringified(self):
        value = UUID("12345678-1234-5678-1234-567812345678")
        assert encode_value(value) == '"12345678-1234-5678-1234-567812345678"'


class TestLogging:
    """Tests for writing change log entries."""

    @pytest.mark.asyncio
    async def test_log_update_writes_one_entry_per_field(self, db, factory):
        team = await factory.team()
        user = await factory.user("Editor")
        contact = await factory.contact(team)
        service = ChangeLogService(db)

        entries = await service.log_update(
            contact.id,
            {"name": "Ada", "city": "Berlin", "phone": None},
            {"name": "Ada L.", "city": "Hamburg", "phone": None},
            user,
        )

        assert [e.field_name for e in entries] == ["city", "name"]
        assert all(e.action == ChangeAction.UPDATED for e in entries)
        assert all(e.user_name == "Editor" for e in entries)

    @pytest.mark.asyncio
    async def test_log_update_without_changes_writes_nothing(self, db, factory):
        team = await factory.team()
        contact = await factory.contact(team)
        service = ChangeLogService(db)

        assert await service.log_update(contact.id, {"name": "Ada"}, {"name": "Ada"}) == []
        assert await service.get_change_logs(contact.id) == []

    @pytest.mark.asyncio
    async def test_log_create_without_user(self, db, factory):
        team = await factory.team()
        contact = await factory.contact(team)

        entry = await ChangeLogService(db).log_create(contact.id)

        assert entry.action == ChangeAction.CREATED
        assert entry.user_id is None
