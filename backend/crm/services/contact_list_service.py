"""Contact list manager: MANUAL lists with explicit members, SMART lists
evaluated live from their stored filters.

SMART lists never get membership rows and are never cached; every read
re-runs the filters together with the reader's visibility. MANUAL list
members are filtered through the same visibility so a user never sees a
member outside their access.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import InvariantViolationError, NotFoundError
from crm.core.logging import get_logger
from crm.models.contact import Contact
from crm.models.contact_list import ContactList, ContactListMember, ContactListType
from crm.models.user import UserRole
from crm.query.predicates import (
    Compare,
    CompareOp,
    ListMembership,
    Predicate,
    and_,
    field_in,
)
from crm.query.sql import compile_predicate
from crm.schemas.filters import ContactFilter, dump_filters, parse_filters
from crm.services.centroid_lookup import CentroidLookup
from crm.services.contact_filter_service import ContactFilterService
from crm.services.visibility_service import VisibilityService

logger = get_logger(__name__)

SMART_LIST_MUTATION_ERROR = "Cannot manually modify contacts for smart lists"


@dataclass
class ContactListView:
    """A list together with what the requesting user can see of it."""

    contact_list: ContactList
    contact_count: int
    contacts: list[Contact] = field(default_factory=list)


class ContactListService:
    """Service for contact list lifecycle and membership."""

    def __init__(self, db: AsyncSession, centroids: CentroidLookup | None = None):
        self.db = db
        self.evaluator = ContactFilterService(db, centroids)
        self.visibility = VisibilityService(db)

    async def create_list(
        self,
        team_id: UUID,
        name: str,
        description: str | None = None,
        list_type: ContactListType = ContactListType.MANUAL,
        filters: Sequence[ContactFilter | dict[str, Any]] | None = None,
        contact_ids: Sequence[UUID] | None = None,
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> ContactList:
        """Create a list.

        MANUAL lists are seeded with the given contacts (ids outside the team
        or outside the user's visibility are ignored). SMART lists persist
        their filters and get no members.

        Raises:
            InvariantViolationError: If the name is blank
            FilterValidationError: If a filter has an invalid shape
        """
        if not name or not name.strip():
            raise InvariantViolationError("List name is required")

        stored_filters = None
        if list_type == ContactListType.SMART:
            stored_filters = dump_filters(parse_filters(list(filters or [])))

        contact_list = ContactList(
            team_id=team_id,
            name=name.strip(),
            description=description,
            type=list_type,
            filters=stored_filters,
        )
        self.db.add(contact_list)
        await self.db.flush()

        seeded = 0
        if list_type == ContactListType.MANUAL and contact_ids:
            visibility = await self.visibility.resolve_contact_visibility(team_id, user_id, roles)
            seeded = await self._insert_members(contact_list, contact_ids, visibility)

        logger.info(
            "contact_list_created",
            team_id=team_id,
            list_id=contact_list.id,
            list_type=list_type.value,
            filters=len(stored_filters or []),
            members=seeded,
        )
        return contact_list

    async def list_lists(
        self,
        team_id: UUID,
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> list[ContactListView]:
        """All lists of a team with counts as seen by the requesting user."""
        visibility = await self.visibility.resolve_contact_visibility(team_id, user_id, roles)
        result = await self.db.execute(
            select(ContactList)
            .where(ContactList.team_id == team_id)
            .order_by(ContactList.created_at.desc(), ContactList.id)
        )

        views = []
        for contact_list in result.scalars().all():
            predicate = await self._list_predicate(contact_list, visibility)
            count = await self.evaluator.count(predicate)
            views.append(ContactListView(contact_list=contact_list, contact_count=count))
        return views

    async def get_list(
        self,
        list_id: UUID,
        team_id: UUID,
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> ContactListView:
        """Get a list with the contacts visible to the requesting user.

        Raises:
            NotFoundError: If the list does not exist in the team
        """
        contact_list = await self._get_list_or_raise(list_id, team_id)
        visibility = await self.visibility.resolve_contact_visibility(team_id, user_id, roles)

        predicate = await self._list_predicate(contact_list, visibility)
        contacts = await self.evaluator.fetch(predicate)
        return ContactListView(
            contact_list=contact_list,
            contact_count=len(contacts),
            contacts=contacts,
        )

    async def count_list_contacts(
        self,
        contact_list: ContactList,
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> int:
        """Visible members of a MANUAL list, current matches of a SMART one."""
        visibility = await self.visibility.resolve_contact_visibility(
            contact_list.team_id, user_id, roles
        )
        predicate = await self._list_predicate(contact_list, visibility)
        return await self.evaluator.count(predicate)

    async def update_list(
        self,
        list_id: UUID,
        team_id: UUID,
        name: str | None = None,
        description: str | None = None,
        list_type: ContactListType | None = None,
        filters: Sequence[ContactFilter | dict[str, Any]] | None = None,
    ) -> ContactList:
        """Update a list; None leaves a field unchanged.

        Switching to SMART stores the given filters (empty when omitted) and
        leaves existing member rows unread. Switching to MANUAL clears the
        filters.

        Raises:
            NotFoundError: If the list does not exist in the team
            InvariantViolationError: If the new name is blank
            FilterValidationError: If a filter has an invalid shape
        """
        contact_list = await self._get_list_or_raise(list_id, team_id)

        if name is not None:
            if not name.strip():
                raise InvariantViolationError("List name is required")
            contact_list.name = name.strip()
        if description is not None:
            contact_list.description = description

        target_type = list_type or contact_list.type
        if target_type == ContactListType.SMART:
            if filters is not None or contact_list.filters is None:
                contact_list.filters = dump_filters(parse_filters(list(filters or [])))
        else:
            contact_list.filters = None

        if target_type != contact_list.type:
            logger.info(
                "contact_list_type_changed",
                team_id=team_id,
                list_id=contact_list.id,
                from_type=contact_list.type.value,
                to_type=target_type.value,
            )
            contact_list.type = target_type

        await self.db.flush()
        return contact_list

    async def add_contacts_to_list(
        self,
        list_id: UUID,
        team_id: UUID,
        contact_ids: Sequence[UUID],
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> int:
        """Add contacts to a MANUAL list; already present contacts are skipped.

        Contacts the user cannot see are ignored like unknown ids.

        Returns:
            Number of members added

        Raises:
            NotFoundError: If the list does not exist in the team
            InvariantViolationError: If the list is SMART
        """
        contact_list = await self._get_list_or_raise(list_id, team_id)
        if contact_list.is_smart:
            raise InvariantViolationError(SMART_LIST_MUTATION_ERROR)

        visibility = await self.visibility.resolve_contact_visibility(team_id, user_id, roles)
        added = await self._insert_members(contact_list, contact_ids, visibility)
        logger.info(
            "contact_list_members_added",
            team_id=team_id,
            list_id=contact_list.id,
            added=added,
        )
        return added

    async def remove_contacts_from_list(
        self,
        list_id: UUID,
        team_id: UUID,
        contact_ids: Sequence[UUID],
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> int:
        """Remove contacts from a MANUAL list; absent or hidden contacts are ignored.

        Returns:
            Number of members removed

        Raises:
            NotFoundError: If the list does not exist in the team
            InvariantViolationError: If the list is SMART
        """
        contact_list = await self._get_list_or_raise(list_id, team_id)
        if contact_list.is_smart:
            raise InvariantViolationError(SMART_LIST_MUTATION_ERROR)

        visibility = await self.visibility.resolve_contact_visibility(team_id, user_id, roles)
        visible = await self._visible_contact_ids(team_id, contact_ids, visibility)
        if not visible:
            return 0

        result = await self.db.execute(
            delete(ContactListMember).where(
                ContactListMember.list_id == contact_list.id,
                ContactListMember.contact_id.in_(visible),
            )
        )
        removed = result.rowcount or 0
        logger.info(
            "contact_list_members_removed",
            team_id=team_id,
            list_id=contact_list.id,
            removed=removed,
        )
        return removed

    async def delete_lists(self, team_id: UUID, list_ids: Sequence[UUID]) -> int:
        """Delete lists of a team with their members; other ids are ignored."""
        if not list_ids:
            return 0

        result = await self.db.execute(
            select(ContactList.id).where(
                ContactList.team_id == team_id,
                ContactList.id.in_(list(list_ids)),
            )
        )
        ids = list(result.scalars().all())
        if not ids:
            return 0

        await self.db.execute(delete(ContactListMember).where(ContactListMember.list_id.in_(ids)))
        await self.db.execute(delete(ContactList).where(ContactList.id.in_(ids)))
        await self.db.flush()

        logger.info("contact_lists_deleted", team_id=team_id, list_ids=ids, count=len(ids))
        return len(ids)

    async def _get_list_or_raise(self, list_id: UUID, team_id: UUID) -> ContactList:
        result = await self.db.execute(
            select(ContactList).where(
                ContactList.id == list_id,
                ContactList.team_id == team_id,
            )
        )
        contact_list = result.scalar_one_or_none()
        if contact_list is None:
            raise NotFoundError("List", list_id)
        return contact_list

    def _membership_predicate(
        self, contact_list: ContactList, visibility: Predicate | None
    ) -> Predicate:
        return and_(
            Compare("team_id", CompareOp.EQ, contact_list.team_id),
            ListMembership(contact_list.id),
            visibility,
        )

    async def _list_predicate(
        self, contact_list: ContactList, visibility: Predicate | None
    ) -> Predicate:
        if contact_list.is_smart:
            return await self.evaluator.build_predicate(
                contact_list.team_id,
                visibility=visibility,
                filters=contact_list.filters or [],
            )
        return self._membership_predicate(contact_list, visibility)

    async def _visible_contact_ids(
        self, team_id: UUID, contact_ids: Sequence[UUID], visibility: Predicate | None
    ) -> set[UUID]:
        predicate = and_(
            Compare("team_id", CompareOp.EQ, team_id),
            field_in("id", contact_ids),
            visibility,
        )
        result = await self.db.execute(select(Contact.id).where(compile_predicate(predicate)))
        return set(result.scalars().all())

    async def _insert_members(
        self,
        contact_list: ContactList,
        contact_ids: Sequence[UUID],
        visibility: Predicate | None,
    ) -> int:
        wanted = list(dict.fromkeys(contact_ids))
        if not wanted:
            return 0

        valid = await self._visible_contact_ids(contact_list.team_id, wanted, visibility)

        existing_result = await self.db.execute(
            select(ContactListMember.contact_id).where(
                ContactListMember.list_id == contact_list.id,
                ContactListMember.contact_id.in_(wanted),
            )
        )
        existing = set(existing_result.scalars().all())

        new_ids = [cid for cid in wanted if cid in valid and cid not in existing]
        for contact_id in new_ids:
            self.db.add(ContactListMember(list_id=contact_list.id, contact_id=contact_id))
        await self.db.flush()
        return len(new_ids)
