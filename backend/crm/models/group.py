"""Group SQLAlchemy models for team-scoped access control."""

import enum
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from crm.database import Base, utc_now
from crm.models.types import JSONType


class AppModule(str, enum.Enum):
    """Top-level application modules a group can be granted."""

    CRM = "CRM"
    FUNDING = "FUNDING"
    ADMIN = "ADMIN"


class ContactSubmodule(str, enum.Enum):
    """CRM submodules that unlock extra contact fields and views."""

    SUPERVISION = "SUPERVISION"
    EVENTS = "EVENTS"
    SHOP = "SHOP"


ALL_APP_MODULES: tuple[AppModule, ...] = tuple(AppModule)

# Contact fields each submodule unlocks in the UI
CONTACT_SUBMODULE_FIELDS: dict[ContactSubmodule, tuple[str, ...]] = {
    ContactSubmodule.SUPERVISION: (
        "gender",
        "genderRequestPreference",
        "isBipoc",
        "racismRequestPreference",
        "otherMargins",
        "onboardingDate",
        "breakUntil",
    ),
    ContactSubmodule.EVENTS: (),
    ContactSubmodule.SHOP: (),
}


class Group(Base):
    """Access-control and permission unit scoped to a team.

    Exactly one group per team has ``is_default_group`` set; the partial
    unique index below enforces that at the database level.
    """

    __tablename__ = "groups"

    __table_args__ = (
        Index(
            "uq_groups_team_default",
            "team_id",
            unique=True,
            postgresql_where=text("is_default_group"),
            sqlite_where=text("is_default_group"),
        ),
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
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    can_access_all_contacts: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    is_default_group: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    modules: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
    )
    contact_submodules: Mapped[list[str]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
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
    def module_set(self) -> frozenset[AppModule]:
        return frozenset(AppModule(m) for m in self.modules or ())

    @property
    def submodule_set(self) -> frozenset[ContactSubmodule]:
        return frozenset(ContactSubmodule(m) for m in self.contact_submodules or ())

    def __repr__(self) -> str:
        marker = " (default)" if self.is_default_group else ""
        return f"<Group {self.name}{marker}>"


class UserGroup(Base):
    """Junction table for User <-> Group membership."""

    __tablename__ = "user_groups"

    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_user_groups_user_group"),
    )

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<UserGroup user:{self.user_id} group:{self.group_id}>"
