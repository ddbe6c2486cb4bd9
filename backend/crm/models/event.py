"""Event participation SQLAlchemy models."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm.database import Base, utc_now


class Event(Base):
    """A team event contacts can participate in."""

    __tablename__ = "events"

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
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    location: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    start_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Event {self.title}>"


class EventRole(Base):
    """Team-defined role a participant can hold at an event."""

    __tablename__ = "event_roles"

    __table_args__ = (
        UniqueConstraint("team_id", "name", name="uq_event_roles_team_name"),
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
        String(100),
        nullable=False,
    )
    color: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<EventRole {self.name}>"


class EventContact(Base):
    """Participation of a contact in an event."""

    __tablename__ = "event_contacts"

    __table_args__ = (
        UniqueConstraint("event_id", "contact_id", name="uq_event_contacts_event_contact"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    event_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    contact_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<EventContact event:{self.event_id} contact:{self.contact_id}>"


class EventContactRole(Base):
    """Role held by a participant at an event."""

    __tablename__ = "event_contact_roles"

    __table_args__ = (
        UniqueConstraint(
            "event_contact_id",
            "event_role_id",
            name="uq_event_contact_roles_participant_role",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    event_contact_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("event_contacts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_role_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("event_roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<EventContactRole participant:{self.event_contact_id} "
            f"role:{self.event_role_id}>"
        )
