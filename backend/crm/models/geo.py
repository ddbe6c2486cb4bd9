"""Postal-code centroid lookup table used by distance filters."""

from sqlalchemy import Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from crm.database import Base


class PostalCodeCentroid(Base):
    """Centroid coordinates for a normalized (country_code, postal_code) pair.

    Rows are loaded from an external postal dataset; keys must already be in
    the form produced by ``crm.core.geo.postal_key``.
    """

    __tablename__ = "postal_code_centroids"

    __table_args__ = (
        Index("ix_postal_code_centroids_lat_lon", "latitude", "longitude"),
    )

    country_code: Mapped[str] = mapped_column(
        String(2),
        primary_key=True,
    )
    postal_code: Mapped[str] = mapped_column(
        String(20),
        primary_key=True,
    )
    latitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )
    longitude: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )
    place_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<PostalCodeCentroid {self.country_code}-{self.postal_code}>"
