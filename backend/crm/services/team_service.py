"""Team creation and team membership changes.

Joining or leaving a team changes who should sit in the team's default
group, so every membership change ends with a default-group reconciliation.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import CrmValidationError, NotFoundError
from crm.core.logging import get_logger
from crm.models.group import AppModule, Group, UserGroup
from crm.models.team import Team, TeamMember
from crm.models.user import User
from crm.services.group_service import DefaultGroupReconciliation, GroupService

logger = get_logger(__name__)


class TeamService:
    """Service for teams and their user membership."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.groups = GroupService(db)

    async def create_team(
        self,
        name: str,
        modules: Sequence[AppModule | str] | None = None,
        member_ids: Sequence[UUID] | None = None,
    ) -> Team:
        """Create a team, seed its members and its default group."""
        if not name or not name.strip():
            raise CrmValidationError("Name is required")

        team = Team(
            name=name.strip(),
            modules=[AppModule(m).value for m in dict.fromkeys(modules or [])],
        )
        self.db.add(team)
        await self.db.flush()

        for user_id in dict.fromkeys(member_ids or []):
            await self._require_user(user_id)
            self.db.add(TeamMember(team_id=team.id, user_id=user_id))
        await self.db.flush()

        logger.info("team_created", team_id=team.id, name=team.name)
        await self.groups.ensure_default_group(team.id)
        return team

    async def add_user_to_team(self, team_id: UUID, user_id: UUID) -> DefaultGroupReconciliation:
        """Join a user to a team (idempotent) and reconcile the default group.

        Raises:
            NotFoundError: If the team or user does not exist
        """
        await self.groups.get_team(team_id)
        await self._require_user(user_id)

        result = await self.db.execute(
            select(TeamMember).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
            )
        )
        if result.scalar_one_or_none() is None:
            self.db.add(TeamMember(team_id=team_id, user_id=user_id))
            await self.db.flush()
            logger.info("team_member_added", team_id=team_id, user_id=user_id)

        return await self.groups.reconcile_default_group(team_id)

    async def remove_user_from_team(
        self, team_id: UUID, user_id: UUID
    ) -> DefaultGroupReconciliation:
        """Remove a user from a team along with their groups in that team.

        Raises:
            NotFoundError: If the team does not exist
        """
        await self.groups.get_team(team_id)

        team_group_ids = select(Group.id).where(Group.team_id == team_id)
        await self.db.execute(
            delete(UserGroup).where(
                UserGroup.user_id == user_id,
                UserGroup.group_id.in_(team_group_ids),
            )
        )
        result = await self.db.execute(
            delete(TeamMember).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
            )
        )
        if result.rowcount:
            logger.info("team_member_removed", team_id=team_id, user_id=user_id)

        return await self.groups.reconcile_default_group(team_id)

    async def _require_user(self, user_id: UUID) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", user_id)
        return user
