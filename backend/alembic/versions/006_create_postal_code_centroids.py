"""Create postal_code_centroids table for distance filters.

Revision ID: 006
Revises: 005
Create Date: 2026-10-02

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "006"
down_revision: str | None = "005"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "postal_code_centroids",
        sa.Column("country_code", sa.String(2), nullable=False),
        sa.Column("postal_code", sa.String(20), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("place_name", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("country_code", "postal_code"),
    )
    # Bounding-box prefilter for radius lookups
    op.create_index(
        "ix_postal_code_centroids_lat_lon",
        "postal_code_centroids",
        ["latitude", "longitude"],
    )


def downgrade() -> None:
    op.drop_index("ix_postal_code_centroids_lat_lon", table_name="postal_code_centroids")
    op.drop_table("postal_code_centroids")
