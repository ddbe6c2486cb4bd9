"""Contact SQLAlchemy models: contacts, profile attributes and change log."""

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm.database import Base, utc_now
from crm.models.types import JSONType

# Text columns a contactField filter may target, keyed by their API name
CONTACT_FILTER_FIELDS: dict[str, str] = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "pronouns": "pronouns",
    "city": "city",
    "website": "website",
    "address": "address",
    "postalCode": "postal_code",
    "state": "state",
    "country": "country",
    "signal": "signal",
}

# Columns searched by the free-text contact query
CONTACT_SEARCH_FIELDS: tuple[str, ...] = (
    "name",
    "email",
    "phone",
    "address",
    "city",
    "postal_code",
    "state",
    "country",
)


class Contact(Base):
    """Identity record for a person known to a team.

    ``group_id`` is the optional owning group used by contact visibility;
    ownerless contacts are visible to every team member.
    """

    __tablename__ = "contacts"

    __table_args__ = (
        UniqueConstraint("team_id", "email", name="uq_contacts_team_email"),
        Index("ix_contacts_team_created", "team_id", "created_at"),
        Index("ix_contacts_country_postal", "country_code", "postal_code"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    team_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    phone: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    signal: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    pronouns: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )
    website: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    address: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    postal_code: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    city: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    state: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    country: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    country_code: Mapped[str | None] = mapped_column(
        String(2),
        nullable=True,
    )
    group_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Contact {self.name} ({self.email})>"


class ContactAttributeType(str, enum.Enum):
    """Value type of a contact profile attribute."""

    STRING = "STRING"
    NUMBER = "NUMBER"
    DATE = "DATE"
    LOCATION = "LOCATION"


class ContactAttribute(Base):
    """Typed key/value profile attribute attached to a contact.

    ``string_value`` always carries the textual form used by attribute
    filters; LOCATION attributes keep their label in ``location_label``.
    """

    __tablename__ = "contact_attributes"

    __table_args__ = (
        UniqueConstraint("contact_id", "key", name="uq_contact_attributes_contact_key"),
        Index("ix_contact_attributes_key", "key"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    contact_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    type: Mapped[ContactAttributeType] = mapped_column(
        Enum(
            ContactAttributeType,
            name="contactattributetype",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=ContactAttributeType.STRING,
    )
    string_value: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    number_value: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )
    date_value: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    location_label: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    latitude: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )
    longitude: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )

    @property
    def text_value(self) -> str | None:
        """Textual form matched by attribute filters."""
        if self.string_value is not None:
            return self.string_value
        return self.location_label

    def __repr__(self) -> str:
        return f"<ContactAttribute {self.key}={self.text_value!r}>"


class ChangeAction(str, enum.Enum):
    """Contact change log action."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"


class ContactChangeLog(Base):
    """Field-level history of a contact.

    Creation writes one CREATED row; each changed field on update writes one
    UPDATED row with JSON-encoded old and new values.
    """

    __tablename__ = "contact_change_logs"

    __table_args__ = (
        Index("ix_contact_change_logs_contact_created", "contact_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    contact_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
    )
    action: Mapped[ChangeAction] = mapped_column(
        Enum(
            ChangeAction,
            name="changeaction",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    field_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )
    old_value: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    new_value: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    user_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,  # Null for system-triggered changes
    )
    user_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    details: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<ContactChangeLog {self.action.value} {self.field_name}>"
