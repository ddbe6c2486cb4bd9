"""Group lifecycle, default-group reconciliation and module access.

Every team has exactly one default group. Team users that belong to no
other group of the team are members of the default group; users with at
least one explicit group are removed from it. ``reconcile_default_group``
restores that state and is called at the end of every group or team
membership mutation, within the caller's transaction.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.config import get_settings
from crm.core.exceptions import (
    CrmValidationError,
    InvariantViolationError,
    NotFoundError,
)
from crm.core.logging import get_logger
from crm.models.contact import Contact
from crm.models.group import (
    ALL_APP_MODULES,
    CONTACT_SUBMODULE_FIELDS,
    AppModule,
    ContactSubmodule,
    Group,
    UserGroup,
)
from crm.models.team import Team, TeamMember
from crm.models.user import User, UserRole

logger = get_logger(__name__)


@dataclass
class DefaultGroupReconciliation:
    """Result of a default-group reconciliation pass."""

    team_id: UUID
    group: Group
    created: bool = False
    promoted: bool = False
    invariants_repaired: bool = False
    members_added: int = 0
    members_removed: int = 0


def _dedupe_modules(values: Iterable[AppModule | str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        module = AppModule(value).value
        if module not in seen:
            seen.append(module)
    return seen


def _dedupe_submodules(values: Iterable[ContactSubmodule | str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        submodule = ContactSubmodule(value).value
        if submodule not in seen:
            seen.append(submodule)
    return seen


def hidden_contact_fields(submodules: Iterable[ContactSubmodule]) -> list[str]:
    """Contact fields locked behind submodules the user does not have."""
    granted = set(submodules)
    return [
        field
        for submodule, fields in CONTACT_SUBMODULE_FIELDS.items()
        if submodule not in granted
        for field in fields
    ]


class GroupService:
    """Service for groups, group membership and module permissions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    # --- Default group ---

    async def ensure_default_group(self, team_id: UUID) -> Group:
        """Return the team's default group, creating or repairing it.

        Idempotent; also reconciles default-group membership.

        Raises:
            NotFoundError: If the team does not exist
        """
        reconciliation = await self.reconcile_default_group(team_id)
        return reconciliation.group

    async def reconcile_default_group(self, team_id: UUID) -> DefaultGroupReconciliation:
        """Resolve the default group and reconcile its membership.

        Steps:
        1. Lock the team row so concurrent callers for the team serialize
        2. Use the existing default group, else promote the group carrying
           the default name, else create one inside a savepoint (a unique
           index violation means another transaction won; re-select theirs)
        3. Force can_access_all_contacts and a non-empty module set
        4. Add ungrouped team users to the default group, remove users that
           hold any other group of the team

        Raises:
            NotFoundError: If the team does not exist
        """
        await self._lock_team(team_id)

        created = False
        promoted = False
        group = await self._find_default_group(team_id)

        if group is None:
            group = await self._find_group_by_name(team_id, self.settings.default_group_name)
            if group is not None:
                group.is_default_group = True
                group.can_access_all_contacts = True
                await self.db.flush()
                promoted = True
                logger.info(
                    "default_group_promoted",
                    team_id=team_id,
                    group_id=group.id,
                )

        if group is None:
            group, created = await self._create_default_group(team_id)

        repaired = False
        if not group.can_access_all_contacts:
            group.can_access_all_contacts = True
            repaired = True
        if not group.modules:
            group.modules = [m.value for m in ALL_APP_MODULES]
            repaired = True
        if repaired:
            await self.db.flush()
            logger.warning(
                "default_group_invariants_repaired",
                team_id=team_id,
                group_id=group.id,
            )

        result = DefaultGroupReconciliation(
            team_id=team_id,
            group=group,
            created=created,
            promoted=promoted,
            invariants_repaired=repaired,
        )
        await self._reconcile_members(group, result)
        return result

    async def _lock_team(self, team_id: UUID) -> Team:
        result = await self.db.execute(
            select(Team).where(Team.id == team_id).with_for_update()
        )
        team = result.scalar_one_or_none()
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    async def _find_default_group(self, team_id: UUID) -> Group | None:
        result = await self.db.execute(
            select(Group).where(
                Group.team_id == team_id,
                Group.is_default_group.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def _find_group_by_name(self, team_id: UUID, name: str) -> Group | None:
        result = await self.db.execute(
            select(Group)
            .where(Group.team_id == team_id, Group.name == name)
            .order_by(Group.created_at, Group.id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _create_default_group(self, team_id: UUID) -> tuple[Group, bool]:
        group = Group(
            team_id=team_id,
            name=self.settings.default_group_name,
            description="Members without an explicit group",
            can_access_all_contacts=True,
            is_default_group=True,
            modules=[m.value for m in ALL_APP_MODULES],
            contact_submodules=[],
        )
        try:
            async with self.db.begin_nested():
                self.db.add(group)
        except IntegrityError:
            logger.info("default_group_create_conflict", team_id=team_id)
            existing = await self._find_default_group(team_id)
            if existing is None:
                raise
            return existing, False

        logger.info("default_group_created", team_id=team_id, group_id=group.id)
        return group, True

    async def _reconcile_members(
        self,
        default_group: Group,
        result: DefaultGroupReconciliation,
    ) -> None:
        team_id = default_group.team_id

        team_users_result = await self.db.execute(
            select(TeamMember.user_id).where(TeamMember.team_id == team_id)
        )
        team_user_ids = set(team_users_result.scalars().all())

        grouped_result = await self.db.execute(
            select(UserGroup.user_id)
            .join(Group, Group.id == UserGroup.group_id)
            .where(
                Group.team_id == team_id,
                Group.is_default_group.is_(False),
            )
            .distinct()
        )
        grouped_user_ids = set(grouped_result.scalars().all())

        default_members_result = await self.db.execute(
            select(UserGroup.user_id).where(UserGroup.group_id == default_group.id)
        )
        default_member_ids = set(default_members_result.scalars().all())

        target_ids = team_user_ids - grouped_user_ids
        to_add = target_ids - default_member_ids
        to_remove = default_member_ids - target_ids

        if to_remove:
            await self.db.execute(
                delete(UserGroup).where(
                    UserGroup.group_id == default_group.id,
                    UserGroup.user_id.in_(to_remove),
                )
            )
        for user_id in sorted(to_add):
            self.db.add(UserGroup(user_id=user_id, group_id=default_group.id))
        await self.db.flush()

        result.members_added = len(to_add)
        result.members_removed = len(to_remove)

        if to_add or to_remove or result.created or result.promoted:
            logger.info(
                "default_group_reconciled",
                team_id=team_id,
                group_id=default_group.id,
                added=result.members_added,
                removed=result.members_removed,
            )

    # --- Group CRUD ---

    async def list_groups(self, team_id: UUID) -> list[Group]:
        result = await self.db.execute(
            select(Group).where(Group.team_id == team_id).order_by(Group.name, Group.id)
        )
        return list(result.scalars().all())

    async def get_group(self, group_id: UUID, team_id: UUID) -> Group:
        """Get a group scoped to a team.

        Raises:
            NotFoundError: If the group does not exist in the team
        """
        result = await self.db.execute(
            select(Group).where(Group.id == group_id, Group.team_id == team_id)
        )
        group = result.scalar_one_or_none()
        if group is None:
            raise NotFoundError("Group", group_id)
        return group

    async def get_group_with_users(
        self, group_id: UUID, team_id: UUID
    ) -> tuple[Group, list[User]]:
        group = await self.get_group(group_id, team_id)
        result = await self.db.execute(
            select(User)
            .join(UserGroup, UserGroup.user_id == User.id)
            .where(UserGroup.group_id == group.id)
            .order_by(User.display_name, User.id)
        )
        return group, list(result.scalars().all())

    async def create_group(
        self,
        team_id: UUID,
        name: str,
        description: str | None = None,
        can_access_all_contacts: bool = False,
        user_ids: Sequence[UUID] | None = None,
        modules: Sequence[AppModule | str] | None = None,
        contact_submodules: Sequence[ContactSubmodule | str] | None = None,
    ) -> Group:
        """Create a group, optionally with initial members.

        Modules default to every app module when omitted or empty.

        Raises:
            NotFoundError: If the team does not exist
            CrmValidationError: If the name is blank or a user is not a team member
        """
        if not name or not name.strip():
            raise CrmValidationError("Name is required")
        await self.get_team(team_id)

        member_ids = list(dict.fromkeys(user_ids or []))
        await self._require_team_members(team_id, member_ids)

        group = Group(
            team_id=team_id,
            name=name.strip(),
            description=description,
            can_access_all_contacts=can_access_all_contacts,
            is_default_group=False,
            modules=_dedupe_modules(modules) if modules else [m.value for m in ALL_APP_MODULES],
            contact_submodules=_dedupe_submodules(contact_submodules or []),
        )
        self.db.add(group)
        await self.db.flush()

        for user_id in member_ids:
            self.db.add(UserGroup(user_id=user_id, group_id=group.id))
        await self.db.flush()

        logger.info(
            "group_created",
            team_id=team_id,
            group_id=group.id,
            members=len(member_ids),
        )
        await self.ensure_default_group(team_id)
        return group

    async def update_group(
        self,
        group_id: UUID,
        team_id: UUID,
        name: str | None = None,
        description: str | None = None,
        can_access_all_contacts: bool | None = None,
        modules: Sequence[AppModule | str] | None = None,
        contact_submodules: Sequence[ContactSubmodule | str] | None = None,
    ) -> Group:
        """Update group attributes; None leaves a field unchanged.

        Raises:
            NotFoundError: If the group does not exist in the team
            InvariantViolationError: If the default group would lose access to
                all contacts or end up with no modules
        """
        group = await self.get_group(group_id, team_id)

        if group.is_default_group:
            if can_access_all_contacts is False:
                raise InvariantViolationError(
                    "Default group must keep access to all contacts"
                )
            if modules is not None and not modules:
                raise InvariantViolationError("Default group must keep at least one module")

        if name is not None:
            if not name.strip():
                raise CrmValidationError("Name is required")
            group.name = name.strip()
        if description is not None:
            group.description = description
        if can_access_all_contacts is not None:
            group.can_access_all_contacts = can_access_all_contacts
        if modules is not None:
            group.modules = _dedupe_modules(modules)
        if contact_submodules is not None:
            group.contact_submodules = _dedupe_submodules(contact_submodules)

        await self.db.flush()
        logger.info("group_updated", team_id=team_id, group_id=group.id)

        await self.ensure_default_group(team_id)
        return group

    async def delete_groups(self, team_id: UUID, group_ids: Sequence[UUID]) -> int:
        """Delete groups of a team; contacts they owned become ownerless.

        Ids outside the team are ignored.

        Returns:
            Number of groups deleted

        Raises:
            InvariantViolationError: If the default group is among the ids
        """
        if not group_ids:
            return 0

        result = await self.db.execute(
            select(Group).where(Group.team_id == team_id, Group.id.in_(group_ids))
        )
        groups = list(result.scalars().all())
        if any(g.is_default_group for g in groups):
            raise InvariantViolationError("Default group cannot be deleted")
        if not groups:
            return 0

        ids = [g.id for g in groups]
        await self.db.execute(
            update(Contact)
            .where(Contact.team_id == team_id, Contact.group_id.in_(ids))
            .values(group_id=None)
        )
        await self.db.execute(delete(UserGroup).where(UserGroup.group_id.in_(ids)))
        await self.db.execute(delete(Group).where(Group.id.in_(ids)))
        await self.db.flush()

        logger.info("group_deleted", team_id=team_id, group_ids=ids, count=len(ids))
        await self.ensure_default_group(team_id)
        return len(ids)

    # --- Membership ---

    async def add_users_to_group(
        self, group_id: UUID, team_id: UUID, user_ids: Sequence[UUID]
    ) -> int:
        """Add team users to a non-default group. Existing members are skipped.

        Returns:
            Number of memberships created

        Raises:
            NotFoundError: If the group does not exist in the team
            InvariantViolationError: If the group is the default group
            CrmValidationError: If a user is not a member of the team
        """
        group = await self.get_group(group_id, team_id)
        if group.is_default_group:
            raise InvariantViolationError("Cannot manually assign users to the default group")

        wanted = list(dict.fromkeys(user_ids))
        await self._require_team_members(team_id, wanted)

        existing_result = await self.db.execute(
            select(UserGroup.user_id).where(
                UserGroup.group_id == group.id,
                UserGroup.user_id.in_(wanted),
            )
        )
        existing = set(existing_result.scalars().all())
        new_ids = [uid for uid in wanted if uid not in existing]

        for user_id in new_ids:
            self.db.add(UserGroup(user_id=user_id, group_id=group.id))
        await self.db.flush()

        logger.info(
            "group_users_added",
            team_id=team_id,
            group_id=group.id,
            added=len(new_ids),
        )
        await self.ensure_default_group(team_id)
        return len(new_ids)

    async def remove_users_from_group(
        self, group_id: UUID, team_id: UUID, user_ids: Sequence[UUID]
    ) -> int:
        """Remove users from a non-default group. Absent users are ignored.

        Returns:
            Number of memberships removed

        Raises:
            NotFoundError: If the group does not exist in the team
            InvariantViolationError: If the group is the default group
        """
        group = await self.get_group(group_id, team_id)
        if group.is_default_group:
            raise InvariantViolationError("Cannot manually remove users from the default group")

        if not user_ids:
            return 0

        result = await self.db.execute(
            delete(UserGroup).where(
                UserGroup.group_id == group.id,
                UserGroup.user_id.in_(list(user_ids)),
            )
        )
        removed = result.rowcount or 0

        logger.info(
            "group_users_removed",
            team_id=team_id,
            group_id=group.id,
            removed=removed,
        )
        await self.ensure_default_group(team_id)
        return removed

    # --- Access queries ---

    async def get_user_groups(self, user_id: UUID, team_id: UUID) -> list[Group]:
        result = await self.db.execute(
            select(Group)
            .join(UserGroup, UserGroup.group_id == Group.id)
            .where(UserGroup.user_id == user_id, Group.team_id == team_id)
            .order_by(Group.name, Group.id)
        )
        return list(result.scalars().all())

    async def get_user_module_access(self, user_id: UUID, team_id: UUID) -> list[AppModule]:
        """Modules granted to a user in a team.

        Union of the user's group modules (a group with no modules grants
        all), intersected with the team's enabled modules. ADMIN survives the
        intersection when a group grants it.
        """
        team = await self.get_team(team_id)
        groups = await self.get_user_groups(user_id, team_id)

        granted: set[AppModule] = set()
        for group in groups:
            granted |= group.module_set or set(ALL_APP_MODULES)

        enabled = {AppModule(m) for m in team.modules} if team.modules else set(ALL_APP_MODULES)
        allowed = {m for m in granted if m in enabled or m == AppModule.ADMIN}
        return [m for m in ALL_APP_MODULES if m in allowed]

    async def get_user_contact_submodules(
        self, user_id: UUID, team_id: UUID
    ) -> list[ContactSubmodule]:
        """Contact submodules granted by the user's groups; empty without CRM access."""
        modules = await self.get_user_module_access(user_id, team_id)
        if AppModule.CRM not in modules:
            return []

        groups = await self.get_user_groups(user_id, team_id)
        granted: set[ContactSubmodule] = set()
        for group in groups:
            granted |= group.submodule_set
        return [s for s in ContactSubmodule if s in granted]

    async def has_module_access(
        self,
        team_id: UUID,
        user_id: UUID | None,
        roles: Iterable[UserRole],
        module: AppModule,
    ) -> bool:
        if user_id is None:
            return False
        if UserRole.ADMIN in frozenset(roles):
            return True
        modules = await self.get_user_module_access(user_id, team_id)
        return module in modules

    # --- Helpers ---

    async def get_team(self, team_id: UUID) -> Team:
        result = await self.db.execute(select(Team).where(Team.id == team_id))
        team = result.scalar_one_or_none()
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    async def _require_team_members(self, team_id: UUID, user_ids: Sequence[UUID]) -> None:
        if not user_ids:
            return
        result = await self.db.execute(
            select(TeamMember.user_id).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id.in_(list(user_ids)),
            )
        )
        members = set(result.scalars().all())
        outsiders = [uid for uid in user_ids if uid not in members]
        if outsiders:
            raise CrmValidationError(
                f"Users are not members of this team: {', '.join(str(u) for u in outsiders)}"
            )
