"""Contact CRUD with typed profile attributes and change history."""

import math
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import InvariantViolationError, NotFoundError
from crm.core.geo import normalize_country_code, normalize_postal_code
from crm.core.logging import get_logger
from crm.models.contact import (
    Contact,
    ContactAttribute,
    ContactAttributeType,
    ContactChangeLog,
)
from crm.models.contact_list import ContactListMember
from crm.models.event import EventContact, EventContactRole
from crm.models.group import Group
from crm.models.user import User, UserRole
from crm.query.memory import ContactSnapshot, matches
from crm.query.predicates import Compare, CompareOp, and_, field_in
from crm.query.sql import compile_predicate
from crm.schemas.contact import (
    ContactAttributeInput,
    ContactCreate,
    ContactLocationValue,
    ContactUpdate,
)
from crm.services.change_log_service import ChangeLogService
from crm.services.visibility_service import VisibilityService

logger = get_logger(__name__)

DUPLICATE_EMAIL_ERROR = "A contact with this email already exists in the team"

# Scalar contact fields tracked by the change log
TRACKED_FIELDS: tuple[str, ...] = (
    "name",
    "email",
    "phone",
    "signal",
    "pronouns",
    "website",
    "address",
    "postal_code",
    "city",
    "state",
    "country",
    "group_id",
)


@dataclass
class NormalizedAttribute:
    """Profile attribute after trimming, type coercion and validation."""

    key: str
    type: ContactAttributeType
    string_value: str | None = None
    number_value: float | None = None
    date_value: datetime | None = None
    location_label: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    def to_model(self, contact_id: UUID) -> ContactAttribute:
        return ContactAttribute(contact_id=contact_id, **asdict(self))

    @classmethod
    def from_model(cls, attribute: ContactAttribute) -> "NormalizedAttribute":
        date_value = attribute.date_value
        if date_value is not None and date_value.tzinfo is None:
            date_value = date_value.replace(tzinfo=UTC)
        return cls(
            key=attribute.key,
            type=attribute.type,
            string_value=attribute.string_value,
            number_value=attribute.number_value,
            date_value=date_value,
            location_label=attribute.location_label,
            latitude=attribute.latitude,
            longitude=attribute.longitude,
        )


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def _parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str) and value.strip():
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _parse_date(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def normalize_attributes(
    attributes: Iterable[ContactAttributeInput],
) -> list[NormalizedAttribute]:
    """Trim keys, drop duplicates and empty or invalid values.

    The first attribute for a key wins. NUMBER and DATE attributes also
    carry their textual form in ``string_value`` so attribute filters can
    match them.
    """
    seen: set[str] = set()
    normalized: list[NormalizedAttribute] = []

    for attribute in attributes:
        key = attribute.key.strip()
        if not key or key in seen:
            continue

        value = attribute.value
        item: NormalizedAttribute | None = None

        match attribute.type:
            case ContactAttributeType.STRING:
                if isinstance(value, str) and value.strip():
                    item = NormalizedAttribute(key, attribute.type, string_value=value.strip())
            case ContactAttributeType.NUMBER:
                number = _parse_number(value)
                if number is not None:
                    item = NormalizedAttribute(
                        key,
                        attribute.type,
                        string_value=_format_number(number),
                        number_value=number,
                    )
            case ContactAttributeType.DATE:
                parsed = _parse_date(value)
                if parsed is not None:
                    item = NormalizedAttribute(
                        key,
                        attribute.type,
                        string_value=parsed.isoformat(),
                        date_value=parsed,
                    )
            case ContactAttributeType.LOCATION:
                if isinstance(value, ContactLocationValue):
                    label = value.label.strip() if value.label and value.label.strip() else None
                    latitude = _parse_number(value.latitude)
                    longitude = _parse_number(value.longitude)
                    if label or latitude is not None or longitude is not None:
                        item = NormalizedAttribute(
                            key,
                            attribute.type,
                            location_label=label,
                            latitude=latitude,
                            longitude=longitude,
                        )

        if item is not None:
            normalized.append(item)
            seen.add(key)

    return normalized


def attribute_value(attribute: ContactAttribute) -> str | float | ContactLocationValue | None:
    """API value of a stored attribute."""
    match attribute.type:
        case ContactAttributeType.NUMBER:
            return attribute.number_value
        case ContactAttributeType.LOCATION:
            return ContactLocationValue(
                label=attribute.location_label,
                latitude=attribute.latitude,
                longitude=attribute.longitude,
            )
        case _:
            return attribute.string_value


def _attributes_for_log(attributes: Sequence[NormalizedAttribute]) -> list[dict[str, Any]]:
    return [
        {k: v for k, v in asdict(a).items() if v is not None}
        for a in sorted(attributes, key=lambda a: a.key)
    ]


class ContactService:
    """Service for contact records, their attributes and history."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.change_logs = ChangeLogService(db)

    async def create_contact(self, data: ContactCreate, user: User | None = None) -> Contact:
        """Create a contact with attributes and a CREATED log entry.

        Raises:
            NotFoundError: If ``group_id`` is not a group of the team
            InvariantViolationError: If the email is already used in the team
        """
        if data.group_id is not None:
            await self._require_group(data.group_id, data.team_id)

        email = str(data.email).strip() if data.email else None
        if email:
            await self._require_unique_email(data.team_id, email)

        contact = Contact(
            team_id=data.team_id,
            name=data.name.strip(),
            email=email,
            phone=data.phone,
            signal=data.signal,
            pronouns=data.pronouns,
            website=data.website,
            address=data.address,
            postal_code=normalize_postal_code(data.postal_code),
            city=data.city,
            state=data.state,
            country=data.country,
            country_code=normalize_country_code(data.country),
            group_id=data.group_id,
        )
        self.db.add(contact)
        await self._flush_unique()

        attributes = normalize_attributes(data.attributes)
        self.db.add_all([a.to_model(contact.id) for a in attributes])
        await self.db.flush()

        await self.change_logs.log_create(contact.id, user)
        logger.info(
            "contact_created",
            team_id=data.team_id,
            contact_id=contact.id,
            attributes=len(attributes),
        )
        return contact

    async def update_contact(
        self,
        contact_id: UUID,
        team_id: UUID,
        data: ContactUpdate,
        user: User | None = None,
        roles: Iterable[UserRole] = (),
    ) -> Contact:
        """Apply a partial update and log each changed field.

        Raises:
            NotFoundError: If the contact is missing or not visible to the user,
                or ``group_id`` is not a group of the team
            InvariantViolationError: If the email is already used in the team
        """
        contact = await self.get_contact(
            contact_id, team_id, user.id if user else None, roles
        )

        changes = data.model_dump(exclude_unset=True, exclude={"attributes"})
        if changes.get("name") is None:
            changes.pop("name", None)
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if changes.get("email") is not None:
            changes["email"] = str(changes["email"]).strip()
        if "postal_code" in changes:
            changes["postal_code"] = normalize_postal_code(changes["postal_code"])

        if changes.get("group_id") is not None:
            await self._require_group(changes["group_id"], team_id)
        if changes.get("email") and changes["email"] != contact.email:
            await self._require_unique_email(team_id, changes["email"], exclude_id=contact.id)

        old_data = {name: getattr(contact, name) for name in TRACKED_FIELDS}
        new_data = {name: value for name, value in changes.items() if name in TRACKED_FIELDS}

        for name, value in new_data.items():
            setattr(contact, name, value)
        if "country" in new_data:
            contact.country_code = normalize_country_code(contact.country)

        if data.attributes is not None:
            current = await self._load_attributes(contact.id)
            replacement = normalize_attributes(data.attributes)
            old_data["attributes"] = _attributes_for_log(current)
            new_data["attributes"] = _attributes_for_log(replacement)
            if old_data["attributes"] != new_data["attributes"]:
                await self.db.execute(
                    delete(ContactAttribute).where(ContactAttribute.contact_id == contact.id)
                )
                self.db.add_all([a.to_model(contact.id) for a in replacement])

        await self._flush_unique()
        await self.change_logs.log_update(contact.id, old_data, new_data, user)
        return contact

    async def get_contact(
        self,
        contact_id: UUID,
        team_id: UUID,
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> Contact:
        """Get a contact the user is allowed to see.

        Raises:
            NotFoundError: If the contact is missing or not visible
        """
        result = await self.db.execute(
            select(Contact).where(Contact.id == contact_id, Contact.team_id == team_id)
        )
        contact = result.scalar_one_or_none()
        if contact is None:
            raise NotFoundError("Contact", contact_id)

        visibility = await VisibilityService(self.db).resolve_contact_visibility(
            team_id, user_id, roles
        )
        if visibility is not None and not matches(visibility, ContactSnapshot.from_contact(contact)):
            logger.info(
                "contact_access_denied",
                team_id=team_id,
                contact_id=contact_id,
                user_id=user_id,
            )
            raise NotFoundError("Contact", contact_id)
        return contact

    async def get_attributes(self, contact_id: UUID) -> list[ContactAttribute]:
        result = await self.db.execute(
            select(ContactAttribute)
            .where(ContactAttribute.contact_id == contact_id)
            .order_by(ContactAttribute.key)
        )
        return list(result.scalars().all())

    async def get_change_logs(
        self,
        contact_id: UUID,
        team_id: UUID,
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> list[ContactChangeLog]:
        contact = await self.get_contact(contact_id, team_id, user_id, roles)
        return await self.change_logs.get_change_logs(contact.id)

    async def delete_contacts(
        self,
        team_id: UUID,
        contact_ids: Sequence[UUID],
        user_id: UUID | None = None,
        roles: Iterable[UserRole] = (),
    ) -> int:
        """Delete contacts of a team with their list, event and history rows.

        Ids outside the team or outside the user's visibility are ignored.
        """
        if not contact_ids:
            return 0

        visibility = await VisibilityService(self.db).resolve_contact_visibility(
            team_id, user_id, roles
        )
        predicate = and_(
            Compare("team_id", CompareOp.EQ, team_id),
            field_in("id", contact_ids),
            visibility,
        )
        result = await self.db.execute(select(Contact.id).where(compile_predicate(predicate)))
        ids = list(result.scalars().all())
        if not ids:
            return 0

        participant_ids = select(EventContact.id).where(EventContact.contact_id.in_(ids))
        await self.db.execute(
            delete(EventContactRole).where(EventContactRole.event_contact_id.in_(participant_ids))
        )
        await self.db.execute(delete(EventContact).where(EventContact.contact_id.in_(ids)))
        await self.db.execute(delete(ContactListMember).where(ContactListMember.contact_id.in_(ids)))
        await self.db.execute(delete(ContactAttribute).where(ContactAttribute.contact_id.in_(ids)))
        await self.db.execute(delete(ContactChangeLog).where(ContactChangeLog.contact_id.in_(ids)))
        await self.db.execute(delete(Contact).where(Contact.id.in_(ids)))
        await self.db.flush()

        logger.info("contacts_deleted", team_id=team_id, count=len(ids))
        return len(ids)

    async def list_attribute_keys(self, team_id: UUID) -> list[str]:
        """Distinct profile attribute keys used by a team's contacts."""
        result = await self.db.execute(
            select(ContactAttribute.key)
            .join(Contact, Contact.id == ContactAttribute.contact_id)
            .where(Contact.team_id == team_id)
            .distinct()
            .order_by(ContactAttribute.key)
        )
        return list(result.scalars().all())

    async def _load_attributes(self, contact_id: UUID) -> list[NormalizedAttribute]:
        return [NormalizedAttribute.from_model(a) for a in await self.get_attributes(contact_id)]

    async def _require_group(self, group_id: UUID, team_id: UUID) -> None:
        result = await self.db.execute(
            select(Group.id).where(Group.id == group_id, Group.team_id == team_id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Group", group_id)

    async def _require_unique_email(
        self, team_id: UUID, email: str, exclude_id: UUID | None = None
    ) -> None:
        stmt = select(Contact.id).where(Contact.team_id == team_id, Contact.email == email)
        if exclude_id is not None:
            stmt = stmt.where(Contact.id != exclude_id)
        result = await self.db.execute(stmt.limit(1))
        if result.scalar_one_or_none() is not None:
            raise InvariantViolationError(DUPLICATE_EMAIL_ERROR)

    async def _flush_unique(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise InvariantViolationError(DUPLICATE_EMAIL_ERROR) from e
