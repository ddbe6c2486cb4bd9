"""Tests for GroupService: default group reconciliation, CRUD and module access."""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import select

from crm.core.exceptions import CrmValidationError, InvariantViolationError, NotFoundError
from crm.models.group import AppModule, ContactSubmodule, Group, UserGroup
from crm.models.user import UserRole
from crm.services.group_service import GroupService, hidden_contact_fields


async def default_member_ids(db, team):
    result = await db.execute(
        select(UserGroup.user_id)
        .join(Group, Group.id == UserGroup.group_id)
        .where(Group.team_id == team.id, Group.is_default_group.is_(True))
    )
    return set(result.scalars().all())


async def team_with_members(factory, count=2, modules=None):
    team = await factory.team(modules=modules)
    users = []
    for _ in range(count):
        user = await factory.user()
        await factory.member(team, user)
        users.append(user)
    return team, users


class TestReconcileDefaultGroup:
    """Tests for reconcile_default_group."""

    @pytest.mark.asyncio
    async def test_creates_default_group(self, db, factory):
        team, users = await team_with_members(factory)

        result = await GroupService(db).reconcile_default_group(team.id)

        assert result.created is True
        assert result.group.name == "Default Access"
        assert result.group.is_default_group is True
        assert result.group.can_access_all_contacts is True
        assert set(result.group.modules) == {"CRM", "FUNDING", "ADMIN"}
        assert result.members_added == 2
        assert await default_member_ids(db, team) == {u.id for u in users}

    @pytest.mark.asyncio
    async def test_is_idempotent(self, db, factory):
        team, _ = await team_with_members(factory)
        service = GroupService(db)

        first = await service.reconcile_default_group(team.id)
        second = await service.reconcile_default_group(team.id)

        assert second.group.id == first.group.id
        assert second.created is False
        assert second.members_added == 0
        assert second.members_removed == 0

    @pytest.mark.asyncio
    async def test_promotes_group_with_default_name(self, db, factory):
        team, _ = await team_with_members(factory, count=1)
        legacy = await factory.group(team, name="Default Access")

        result = await GroupService(db).reconcile_default_group(team.id)

        assert result.promoted is True
        assert result.created is False
        assert result.group.id == legacy.id
        assert legacy.is_default_group is True
        assert legacy.can_access_all_contacts is True

    @pytest.mark.asyncio
    async def test_repairs_broken_default_group(self, db, factory):
        team, _ = await team_with_members(factory, count=1)
        broken = await factory.group(
            team,
            name="Everyone",
            is_default_group=True,
            can_access_all_contacts=False,
            modules=[],
        )

        result = await GroupService(db).reconcile_default_group(team.id)

        assert result.group.id == broken.id
        assert result.invariants_repaired is True
        assert broken.can_access_all_contacts is True
        assert broken.modules

    @pytest.mark.asyncio
    async def test_membership_follows_explicit_groups(self, db, factory):
        team, (grouped, ungrouped) = await team_with_members(factory)
        default = await factory.group(
            team,
            name="Default Access",
            is_default_group=True,
            can_access_all_contacts=True,
            users=[grouped],
        )
        await factory.group(team, name="Editors", users=[grouped])

        result = await GroupService(db).reconcile_default_group(team.id)

        assert result.group.id == default.id
        assert result.members_added == 1
        assert result.members_removed == 1
        assert await default_member_ids(db, team) == {ungrouped.id}

    @pytest.mark.asyncio
    async def test_missing_team_raises(self, db):
        with pytest.raises(NotFoundError):
            await GroupService(db).reconcile_default_group(uuid4())

    @pytest.mark.asyncio
    async def test_concurrent_creation_uses_winning_group(self, db, factory):
        team, _ = await team_with_members(factory, count=1)
        winner = await factory.group(
            team,
            name="Everyone",
            is_default_group=True,
            can_access_all_contacts=True,
        )
        service = GroupService(db)

        # First lookup misses the row committed by the other transaction
        with patch.object(
            service,
            "_find_default_group",
            AsyncMock(side_effect=[None, winner]),
        ):
            result = await service.reconcile_default_group(team.id)

        assert result.group.id == winner.id
        assert result.created is False
        groups = await service.list_groups(team.id)
        assert [g.id for g in groups if g.is_default_group] == [winner.id]


class TestGroupCrud:
    """Tests for create, update and delete."""

    @pytest.mark.asyncio
    async def test_create_moves_users_out_of_default_group(self, db, factory):
        team, (user, other) = await team_with_members(factory)
        service = GroupService(db)
        await service.reconcile_default_group(team.id)

        group = await service.create_group(team.id, " Editors ", user_ids=[user.id, user.id])

        assert group.name == "Editors"
        assert group.is_default_group is False
        assert set(group.modules) == {"CRM", "FUNDING", "ADMIN"}
        assert await default_member_ids(db, team) == {other.id}
        assert [g.name for g in await service.get_user_groups(user.id, team.id)] == ["Editors"]

    @pytest.mark.asyncio
    async def test_create_dedupes_modules(self, db, factory):
        team, _ = await team_with_members(factory, count=0)

        group = await GroupService(db).create_group(
            team.id,
            "Funders",
            modules=["FUNDING", AppModule.FUNDING],
            contact_submodules=["EVENTS", "EVENTS"],
        )

        assert group.modules == ["FUNDING"]
        assert group.contact_submodules == ["EVENTS"]

    @pytest.mark.asyncio
    async def test_create_requires_name(self, db, factory):
        team = await factory.team()
        with pytest.raises(CrmValidationError, match="Name is required"):
            await GroupService(db).create_group(team.id, "   ")

    @pytest.mark.asyncio
    async def test_create_rejects_non_members(self, db, factory):
        team = await factory.team()
        outsider = await factory.user()
        with pytest.raises(CrmValidationError):
            await GroupService(db).create_group(team.id, "Editors", user_ids=[outsider.id])

    @pytest.mark.asyncio
    async def test_update_fields(self, db, factory):
        team = await factory.team()
        group = await factory.group(team, name="Old")

        updated = await GroupService(db).update_group(
            group.id,
            team.id,
            name="New",
            can_access_all_contacts=True,
            modules=["CRM"],
            contact_submodules=["SUPERVISION"],
        )

        assert updated.name == "New"
        assert updated.can_access_all_contacts is True
        assert updated.modules == ["CRM"]
        assert updated.contact_submodules == ["SUPERVISION"]

    @pytest.mark.asyncio
    async def test_update_group_of_other_team_is_not_found(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        group = await factory.group(other)
        with pytest.raises(NotFoundError):
            await GroupService(db).update_group(group.id, team.id, name="Mine now")

    @pytest.mark.asyncio
    async def test_default_group_keeps_full_access(self, db, factory):
        team = await factory.team()
        service = GroupService(db)
        default = await service.ensure_default_group(team.id)

        with pytest.raises(InvariantViolationError, match="access to all contacts"):
            await service.update_group(default.id, team.id, can_access_all_contacts=False)
        with pytest.raises(InvariantViolationError, match="at least one module"):
            await service.update_group(default.id, team.id, modules=[])

    @pytest.mark.asyncio
    async def test_delete_makes_contacts_ownerless(self, db, factory):
        team, (user,) = await team_with_members(factory, count=1)
        service = GroupService(db)
        group = await service.create_group(team.id, "Editors", user_ids=[user.id])
        contact = await factory.contact(team, group=group)

        deleted = await service.delete_groups(team.id, [group.id])

        await db.refresh(contact)
        assert deleted == 1
        assert contact.group_id is None
        assert await default_member_ids(db, team) == {user.id}

    @pytest.mark.asyncio
    async def test_delete_default_group_is_rejected(self, db, factory):
        team = await factory.team()
        service = GroupService(db)
        default = await service.ensure_default_group(team.id)
        other = await factory.group(team)

        with pytest.raises(InvariantViolationError, match="Default group cannot be deleted"):
            await service.delete_groups(team.id, [other.id, default.id])

        assert {g.id for g in await service.list_groups(team.id)} == {default.id, other.id}

    @pytest.mark.asyncio
    async def test_delete_ignores_other_teams(self, db, factory):
        team = await factory.team("A")
        other = await factory.team("B")
        foreign = await factory.group(other)

        assert await GroupService(db).delete_groups(team.id, [foreign.id]) == 0


class TestGroupMembership:
    """Tests for adding and removing group users."""

    @pytest.mark.asyncio
    async def test_add_skips_existing_members(self, db, factory):
        team, (a, b) = await team_with_members(factory)
        service = GroupService(db)
        group = await service.create_group(team.id, "Editors", user_ids=[a.id])

        added = await service.add_users_to_group(group.id, team.id, [a.id, b.id])

        assert added == 1
        assert await default_member_ids(db, team) == set()

    @pytest.mark.asyncio
    async def test_remove_returns_user_to_default_group(self, db, factory):
        team, (user,) = await team_with_members(factory, count=1)
        service = GroupService(db)
        group = await service.create_group(team.id, "Editors", user_ids=[user.id])

        removed = await service.remove_users_from_group(group.id, team.id, [user.id])

        assert removed == 1
        assert await default_member_ids(db, team) == {user.id}

    @pytest.mark.asyncio
    async def test_default_group_membership_is_managed(self, db, factory):
        team, (user,) = await team_with_members(factory, count=1)
        service = GroupService(db)
        default = await service.ensure_default_group(team.id)

        with pytest.raises(InvariantViolationError, match="Cannot manually assign"):
            await service.add_users_to_group(default.id, team.id, [user.id])
        with pytest.raises(InvariantViolationError, match="Cannot manually remove"):
            await service.remove_users_from_group(default.id, team.id, [user.id])

    @pytest.mark.asyncio
    async def test_add_rejects_non_members(self, db, factory):
        team = await factory.team()
        group = await factory.group(team)
        outsider = await factory.user()

        with pytest.raises(CrmValidationError):
            await GroupService(db).add_users_to_group(group.id, team.id, [outsider.id])


class TestModuleAccess:
    """Tests for module and submodule resolution."""

    @pytest.mark.asyncio
    async def test_intersects_with_team_modules_keeping_admin(self, db, factory):
        team = await factory.team(modules=["CRM"])
        user = await factory.user()
        await factory.group(team, users=[user], modules=["CRM", "FUNDING", "ADMIN"])

        modules = await GroupService(db).get_user_module_access(user.id, team.id)

        assert modules == [AppModule.CRM, AppModule.ADMIN]

    @pytest.mark.asyncio
    async def test_union_across_groups(self, db, factory):
        team = await factory.team()
        user = await factory.user()
        await factory.group(team, users=[user], modules=["CRM"])
        await factory.group(team, users=[user], modules=["FUNDING"])

        modules = await GroupService(db).get_user_module_access(user.id, team.id)

        assert modules == [AppModule.CRM, AppModule.FUNDING]

    @pytest.mark.asyncio
    async def test_group_without_modules_grants_all(self, db, factory):
        team = await factory.team()
        user = await factory.user()
        await factory.group(team, users=[user], modules=[])

        modules = await GroupService(db).get_user_module_access(user.id, team.id)

        assert modules == [AppModule.CRM, AppModule.FUNDING, AppModule.ADMIN]

    @pytest.mark.asyncio
    async def test_no_groups_grants_nothing(self, db, factory):
        team = await factory.team()
        user = await factory.user()

        assert await GroupService(db).get_user_module_access(user.id, team.id) == []

    @pytest.mark.asyncio
    async def test_submodules_require_crm(self, db, factory):
        team = await factory.team()
        crm_user = await factory.user()
        funding_user = await factory.user()
        await factory.group(
            team, users=[crm_user], modules=["CRM"], contact_submodules=["SUPERVISION"]
        )
        await factory.group(
            team, users=[funding_user], modules=["FUNDING"], contact_submodules=["SUPERVISION"]
        )
        service = GroupService(db)

        assert await service.get_user_contact_submodules(crm_user.id, team.id) == [
            ContactSubmodule.SUPERVISION
        ]
        assert await service.get_user_contact_submodules(funding_user.id, team.id) == []

    @pytest.mark.asyncio
    async def test_has_module_access(self, db, factory):
        team = await factory.team()
        user = await factory.user()
        await factory.group(team, users=[user], modules=["CRM"])
        service = GroupService(db)

        assert await service.has_module_access(team.id, user.id, [UserRole.USER], AppModule.CRM)
        assert not await service.has_module_access(
            team.id, user.id, [UserRole.USER], AppModule.ADMIN
        )
        assert await service.has_module_access(team.id, uuid4(), [UserRole.ADMIN], AppModule.ADMIN)
        assert not await service.has_module_access(team.id, None, [], AppModule.CRM)


class TestHiddenContactFields:
    """Tests for hidden_contact_fields."""

    def test_supervision_fields_hidden_without_submodule(self):
        hidden = hidden_contact_fields([])
        assert "gender" in hidden
        assert "breakUntil" in hidden

    def test_nothing_hidden_with_all_submodules(self):
        assert hidden_contact_fields(list(ContactSubmodule)) == []
