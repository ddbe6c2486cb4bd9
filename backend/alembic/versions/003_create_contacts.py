"""Create contacts, contact_attributes and contact_change_logs tables.

Revision ID: 003
Revises: 002
Create Date: 2026-09-29

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: str | None = "002"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ATTRIBUTE_TYPES = ("STRING", "NUMBER", "DATE", "LOCATION")
CHANGE_ACTIONS = ("CREATED", "UPDATED")


def upgrade() -> None:
    attribute_type_enum = postgresql.ENUM(
        *ATTRIBUTE_TYPES, name="contactattributetype", create_type=False
    )
    attribute_type_enum.create(op.get_bind(), checkfirst=True)
    change_action_enum = postgresql.ENUM(*CHANGE_ACTIONS, name="changeaction", create_type=False)
    change_action_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "contacts",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("signal", sa.String(50), nullable=True),
        sa.Column("pronouns", sa.String(50), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("state", sa.String(255), nullable=True),
        sa.Column("country", sa.String(255), nullable=True),
        sa.Column("country_code", sa.String(2), nullable=True),
        sa.Column("group_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["team_id"],
            ["teams.id"],
            name="fk_contacts_team_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["group_id"],
            ["groups.id"],
            name="fk_contacts_group_id",
            ondelete="SET NULL",
        ),
        sa.UniqueConstraint("team_id", "email", name="uq_contacts_team_email"),
    )
    op.create_index("ix_contacts_team_id", "contacts", ["team_id"])
    op.create_index("ix_contacts_email", "contacts", ["email"])
    op.create_index("ix_contacts_group_id", "contacts", ["group_id"])
    op.create_index("ix_contacts_team_created", "contacts", ["team_id", "created_at"])
    op.create_index("ix_contacts_country_postal", "contacts", ["country_code", "postal_code"])

    op.create_table(
        "contact_attributes",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column(
            "type",
            postgresql.ENUM(*ATTRIBUTE_TYPES, name="contactattributetype", create_type=False),
            server_default="STRING",
            nullable=False,
        ),
        sa.Column("string_value", sa.Text(), nullable=True),
        sa.Column("number_value", sa.Float(), nullable=True),
        sa.Column("date_value", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_label", sa.String(500), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(
            ["contact_id"],
            ["contacts.id"],
            name="fk_contact_attributes_contact_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("contact_id", "key", name="uq_contact_attributes_contact_key"),
    )
    op.create_index("ix_contact_attributes_contact_id", "contact_attributes", ["contact_id"])
    op.create_index("ix_contact_attributes_key", "contact_attributes", ["key"])

    op.create_table(
        "contact_change_logs",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "action",
            postgresql.ENUM(*CHANGE_ACTIONS, name="changeaction", create_type=False),
            nullable=False,
        ),
        sa.Column("field_name", sa.String(100), nullable=True),
        sa.Column("old_value", sa.Text(), nullable=True),
        sa.Column("new_value", sa.Text(), nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("user_name", sa.String(255), nullable=True),
        sa.Column("details", postgresql.JSONB, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["contact_id"],
            ["contacts.id"],
            name="fk_contact_change_logs_contact_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_contact_change_logs_user_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index(
        "ix_contact_change_logs_contact_created",
        "contact_change_logs",
        ["contact_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_contact_change_logs_contact_created", table_name="contact_change_logs")
    op.drop_table("contact_change_logs")
    op.drop_index("ix_contact_attributes_key", table_name="contact_attributes")
    op.drop_index("ix_contact_attributes_contact_id", table_name="contact_attributes")
    op.drop_table("contact_attributes")
    op.drop_index("ix_contacts_country_postal", table_name="contacts")
    op.drop_index("ix_contacts_team_created", table_name="contacts")
    op.drop_index("ix_contacts_group_id", table_name="contacts")
    op.drop_index("ix_contacts_email", table_name="contacts")
    op.drop_index("ix_contacts_team_id", table_name="contacts")
    op.drop_table("contacts")

    postgresql.ENUM(*CHANGE_ACTIONS, name="changeaction").drop(op.get_bind(), checkfirst=True)
    postgresql.ENUM(*ATTRIBUTE_TYPES, name="contactattributetype").drop(
        op.get_bind(), checkfirst=True
    )
