"""Filter evaluator: compile contact filters into predicates and run them.

Evaluation order for a team's contacts:
1. team scope
2. free-text query (case-insensitive substring across the searchable fields)
3. visibility predicate
4. every complete filter, conjunctively

Incomplete filters are skipped. A distance filter whose origin cannot be
resolved, or whose centroid lookup fails, matches nothing.
"""

from collections.abc import Iterable, Sequence
from typing import Any, assert_never
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.config import get_settings
from crm.core.exceptions import GeoLookupError
from crm.core.geo import normalize_country_code, normalize_postal_code
from crm.core.logging import get_logger
from crm.models.contact import CONTACT_FILTER_FIELDS, CONTACT_SEARCH_FIELDS, Contact
from crm.models.user import UserRole
from crm.query.predicates import (
    MATCH_NONE,
    AttributeCompare,
    Compare,
    CompareOp,
    EventRoleParticipation,
    PostalKeyIn,
    Predicate,
    and_,
    or_,
)
from crm.query.sql import compile_predicate
from crm.schemas.filters import (
    AttributeFilter,
    ContactFieldFilter,
    ContactFilter,
    CreatedAtFilter,
    DistanceFilter,
    EventRoleFilter,
    GroupFilter,
    parse_filters,
)
from crm.services.centroid_lookup import CentroidLookup, SqlCentroidLookup
from crm.services.visibility_service import VisibilityService

logger = get_logger(__name__)

_FIELD_OPERATORS = {
    "has": CompareOp.IS_PRESENT,
    "missing": CompareOp.IS_BLANK,
    "contains": CompareOp.CONTAINS,
}

_ATTRIBUTE_OPERATORS = {
    "equals": CompareOp.EQ,
    "contains": CompareOp.CONTAINS,
}


def query_predicate(query: str | None) -> Predicate | None:
    """Free-text search across the searchable contact fields."""
    if not query or not query.strip():
        return None
    term = query.strip()
    return or_(*(Compare(name, CompareOp.CONTAINS, term) for name in CONTACT_SEARCH_FIELDS))


class ContactFilterService:
    """Evaluate filters, search text and visibility over a team's contacts."""

    def __init__(self, db: AsyncSession, centroids: CentroidLookup | None = None):
        self.db = db
        self.centroids = centroids or SqlCentroidLookup(db)
        self.settings = get_settings()

    async def filter_predicate(self, contact_filter: ContactFilter) -> Predicate | None:
        """Predicate for one filter, or None when the filter is incomplete."""
        if not contact_filter.is_complete():
            logger.debug("contact_filter_skipped", filter=contact_filter.to_json())
            return None

        match contact_filter:
            case ContactFieldFilter(field=field, operator=operator, value=value):
                column = CONTACT_FILTER_FIELDS[field]
                op = _FIELD_OPERATORS[operator]
                if op == CompareOp.CONTAINS:
                    return Compare(column, op, (value or "").strip())
                return Compare(column, op)
            case AttributeFilter(key=key, operator=operator, value=value):
                return AttributeCompare(key.strip(), _ATTRIBUTE_OPERATORS[operator], value.strip())
            case GroupFilter(group_id=group_id):
                return Compare("group_id", CompareOp.EQ, group_id)
            case EventRoleFilter(event_role_id=event_role_id):
                return EventRoleParticipation(event_role_id)
            case CreatedAtFilter():
                return and_(
                    Compare("created_at", CompareOp.GTE, contact_filter.start)
                    if contact_filter.start
                    else None,
                    Compare("created_at", CompareOp.LT, contact_filter.end)
                    if contact_filter.end
                    else None,
                )
            case DistanceFilter():
                return await self._distance_predicate(contact_filter)
            case _:
                assert_never(contact_filter)

    async def _distance_predicate(self, contact_filter: DistanceFilter) -> Predicate:
        country = normalize_country_code(contact_filter.country_code)
        postal = normalize_postal_code(contact_filter.postal_code)
        if not country or not postal:
            logger.info(
                "distance_filter_origin_unrecognized",
                country_code=contact_filter.country_code,
                postal_code=contact_filter.postal_code,
            )
            return MATCH_NONE

        radius_km = contact_filter.radius_km
        if radius_km > self.settings.max_distance_radius_km:
            logger.info(
                "distance_filter_radius_capped",
                requested_km=radius_km,
                max_km=self.settings.max_distance_radius_km,
            )
            radius_km = self.settings.max_distance_radius_km

        try:
            origin = await self.centroids.get_centroid(country, postal)
            if origin is None:
                logger.info(
                    "distance_filter_centroid_missing",
                    country_code=country,
                    postal_code=postal,
                )
                return MATCH_NONE
            keys = await self.centroids.within_radius(origin, radius_km)
        except GeoLookupError as e:
            logger.warning(
                "distance_filter_lookup_failed",
                country_code=country,
                postal_code=postal,
                error=str(e),
            )
            return MATCH_NONE

        return PostalKeyIn(frozenset(keys))

    async def build_predicate(
        self,
        team_id: UUID,
        query: str | None = None,
        visibility: Predicate | None = None,
        filters: Sequence[ContactFilter | dict[str, Any]] | None = None,
    ) -> Predicate:
        """Combine team scope, query, visibility and filters into one predicate.

        Raises:
            FilterValidationError: If any filter has an invalid shape
        """
        parsed = parse_filters(list(filters) if filters is not None else None)

        terms: list[Predicate | None] = [
            Compare("team_id", CompareOp.EQ, team_id),
            query_predicate(query),
            visibility,
        ]
        for contact_filter in parsed:
            terms.append(await self.filter_predicate(contact_filter))
        return and_(*terms)

    async def evaluate_contacts(
        self,
        team_id: UUID,
        query: str | None = None,
        visibility: Predicate | None = None,
        filters: Sequence[ContactFilter | dict[str, Any]] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Contact]:
        """Contacts matching query, visibility and every complete filter.

        Results are ordered newest first, ties broken by id.
        """
        predicate = await self.build_predicate(team_id, query, visibility, filters)
        return await self.fetch(predicate, limit=limit, offset=offset)

    async def count_contacts(
        self,
        team_id: UUID,
        query: str | None = None,
        visibility: Predicate | None = None,
        filters: Sequence[ContactFilter | dict[str, Any]] | None = None,
    ) -> int:
        predicate = await self.build_predicate(team_id, query, visibility, filters)
        return await self.count(predicate)

    async def search_contacts(
        self,
        team_id: UUID,
        user_id: UUID | None,
        roles: Iterable[UserRole] = (),
        query: str | None = None,
        filters: Sequence[ContactFilter | dict[str, Any]] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[Contact], int]:
        """Visibility-aware contact search for an acting user.

        Returns:
            Tuple of (page of contacts, total matching count)
        """
        visibility = await VisibilityService(self.db).resolve_contact_visibility(
            team_id, user_id, roles
        )
        predicate = await self.build_predicate(team_id, query, visibility, filters)

        page_size = min(limit or self.settings.contact_search_limit, self.settings.contact_search_limit)
        contacts = await self.fetch(predicate, limit=page_size, offset=offset)
        total = await self.count(predicate)

        logger.info(
            "contact_search_completed",
            team_id=team_id,
            total=total,
            returned=len(contacts),
        )
        return contacts, total

    async def fetch(
        self,
        predicate: Predicate,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Contact]:
        stmt = (
            select(Contact)
            .where(compile_predicate(predicate))
            .order_by(Contact.created_at.desc(), Contact.id.asc())
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count(self, predicate: Predicate) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Contact).where(compile_predicate(predicate))
        )
        return result.scalar_one()
