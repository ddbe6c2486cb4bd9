"""Contact list SQLAlchemy models."""

import enum
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm.database import Base, utc_now
from crm.models.types import JSONType


class ContactListType(str, enum.Enum):
    """MANUAL lists hold explicit members; SMART lists are evaluated live."""

    MANUAL = "MANUAL"
    SMART = "SMART"


class ContactList(Base):
    """Named, team-scoped collection of contacts.

    ``filters`` holds the serialized ContactFilter array for SMART lists and
    is null for MANUAL lists.
    """

    __tablename__ = "contact_lists"

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
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    type: Mapped[ContactListType] = mapped_column(
        Enum(
            ContactListType,
            name="contactlisttype",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=ContactListType.MANUAL,
    )
    filters: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType,
        nullable=True,
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

    @property
    def is_smart(self) -> bool:
        return self.type == ContactListType.SMART

    def __repr__(self) -> str:
        return f"<ContactList {self.name} ({self.type.value})>"


class ContactListMember(Base):
    """Explicit membership row; only written for MANUAL lists."""

    __tablename__ = "contact_list_members"

    __table_args__ = (
        UniqueConstraint("list_id", "contact_id", name="uq_contact_list_members_list_contact"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    list_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("contact_lists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<ContactListMember list:{self.list_id} contact:{self.contact_id}>"
