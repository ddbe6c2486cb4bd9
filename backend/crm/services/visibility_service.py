"""Contact visibility resolution based on group membership."""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.logging import get_logger
from crm.models.group import Group, UserGroup
from crm.models.user import UserRole
from crm.query.predicates import Compare, CompareOp, Predicate, field_in, or_

logger = get_logger(__name__)

OWNERLESS_ONLY: Predicate = Compare("group_id", CompareOp.IS_NULL)


class VisibilityService:
    """Resolve which of a team's contacts a user may see.

    Resolution is read-only: default-group reconciliation happens at write
    entry points (group mutations, team joins), never here.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve_contact_visibility(
        self,
        team_id: UUID,
        user_id: UUID | None,
        roles: Iterable[UserRole] = (),
    ) -> Predicate | None:
        """Compute the visibility predicate for a user within a team.

        Resolution order:
        1. No acting user, or a platform admin: unrestricted (None)
        2. Any of the user's groups in the team can access all contacts:
           unrestricted (None)
        3. Otherwise ownerless contacts plus those owned by the user's groups;
           a user with no groups sees ownerless contacts only

        Args:
            team_id: Team whose contacts are being read
            user_id: Acting user, or None for system callers
            roles: Platform roles of the acting user

        Returns:
            Predicate restricting contacts, or None for full team access
        """
        if user_id is None:
            return None

        if UserRole.ADMIN in frozenset(roles):
            logger.debug("contact_visibility_admin_bypass", team_id=team_id, user_id=user_id)
            return None

        result = await self.db.execute(
            select(Group.id, Group.can_access_all_contacts)
            .join(UserGroup, UserGroup.group_id == Group.id)
            .where(
                UserGroup.user_id == user_id,
                Group.team_id == team_id,
            )
        )
        memberships = result.all()

        if any(row.can_access_all_contacts for row in memberships):
            logger.debug(
                "contact_visibility_resolved",
                team_id=team_id,
                user_id=user_id,
                unrestricted=True,
            )
            return None

        accessible = {row.id for row in memberships}
        logger.debug(
            "contact_visibility_resolved",
            team_id=team_id,
            user_id=user_id,
            unrestricted=False,
            accessible_groups=len(accessible),
        )
        if not accessible:
            return OWNERLESS_ONLY
        return or_(OWNERLESS_ONLY, field_in("group_id", accessible))
