"""Create contact_lists and contact_list_members tables.

Revision ID: 004
Revises: 003
Create Date: 2026-09-30

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    contactlisttype_enum = postgresql.ENUM(
        "MANUAL", "SMART", name="contactlisttype", create_type=False
    )
    contactlisttype_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "contact_lists",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("team_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "type",
            postgresql.ENUM("MANUAL", "SMART", name="contactlisttype", create_type=False),
            server_default="MANUAL",
            nullable=False,
        ),
        # Serialized filter array, SMART lists only
        sa.Column("filters", postgresql.JSONB, nullable=True),
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
            name="fk_contact_lists_team_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_contact_lists_team_id", "contact_lists", ["team_id"])

    op.create_table(
        "contact_list_members",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("list_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "added_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["list_id"],
            ["contact_lists.id"],
            name="fk_contact_list_members_list_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["contact_id"],
            ["contacts.id"],
            name="fk_contact_list_members_contact_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "list_id", "contact_id", name="uq_contact_list_members_list_contact"
        ),
    )
    op.create_index("ix_contact_list_members_list_id", "contact_list_members", ["list_id"])
    op.create_index(
        "ix_contact_list_members_contact_id", "contact_list_members", ["contact_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_contact_list_members_contact_id", table_name="contact_list_members")
    op.drop_index("ix_contact_list_members_list_id", table_name="contact_list_members")
    op.drop_table("contact_list_members")
    op.drop_index("ix_contact_lists_team_id", table_name="contact_lists")
    op.drop_table("contact_lists")

    contactlisttype_enum = postgresql.ENUM("MANUAL", "SMART", name="contactlisttype")
    contactlisttype_enum.drop(op.get_bind(), checkfirst=True)
