"""Create events, event_roles and participation tables.

Revision ID: 005
Revises: 004
Create Date: 2026-10-01

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "005"
down_revision: str | None = "004"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(500), nullable=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_events_team_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_events_team_id", "events", ["team_id"])

    op.create_table(
        "event_roles",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(20), nullable=True),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_event_roles_team_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("team_id", "name", name="uq_event_roles_team_name"),
    )
    op.create_index("ix_event_roles_team_id", "event_roles", ["team_id"])

    op.create_table(
        "event_contacts",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("event_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["event_id"],
            ["events.id"],
            name="fk_event_contacts_event_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["contact_id"],
            ["contacts.id"],
            name="fk_event_contacts_contact_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("event_id", "contact_id", name="uq_event_contacts_event_contact"),
    )
    op.create_index("ix_event_contacts_event_id", "event_contacts", ["event_id"])
    op.create_index("ix_event_contacts_contact_id", "event_contacts", ["contact_id"])

    op.create_table(
        "event_contact_roles",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("event_contact_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["event_contact_id"],
            ["event_contacts.id"],
            name="fk_event_contact_roles_event_contact_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["event_role_id"],
            ["event_roles.id"],
            name="fk_event_contact_roles_event_role_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "event_contact_id",
            "event_role_id",
            name="uq_event_contact_roles_participant_role",
        ),
    )
    op.create_index(
        "ix_event_contact_roles_event_contact_id",
        "event_contact_roles",
        ["event_contact_id"],
    )
    op.create_index(
        "ix_event_contact_roles_event_role_id",
        "event_contact_roles",
        ["event_role_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_event_contact_roles_event_role_id", table_name="event_contact_roles")
    op.drop_index("ix_event_contact_roles_event_contact_id", table_name="event_contact_roles")
    op.drop_table("event_contact_roles")
    op.drop_index("ix_event_contacts_contact_id", table_name="event_contacts")
    op.drop_index("ix_event_contacts_event_id", table_name="event_contacts")
    op.drop_table("event_contacts")
    op.drop_index("ix_event_roles_team_id", table_name="event_roles")
    op.drop_table("event_roles")
    op.drop_index("ix_events_team_id", table_name="events")
    op.drop_table("events")
