"""Postal-code centroid lookups backing the distance filter.

``CentroidLookup`` is the capability the filter evaluator depends on. The
SQL implementation reads the ``postal_code_centroids`` table (bounding-box
prefilter in the database, exact haversine in Python); the in-memory one
works over an already loaded centroid mapping.
"""

from collections.abc import Mapping, Sequence
from typing import Protocol

from sqlalchemy import Row, Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.exceptions import GeoLookupError
from crm.core.geo import (
    Coordinates,
    PostalKey,
    bounding_box,
    haversine_km,
    postal_key,
)
from crm.core.logging import get_logger
from crm.models.geo import PostalCodeCentroid

logger = get_logger(__name__)


class CentroidLookup(Protocol):
    """Resolve postal codes to coordinates and radius neighbourhoods."""

    async def get_centroid(self, country: str, postal_code: str) -> Coordinates | None:
        """Centroid for a (country, postal code) pair, None when unknown.

        Raises:
            GeoLookupError: If centroid data cannot be queried.
        """
        ...

    async def within_radius(self, origin: Coordinates, radius_km: float) -> set[PostalKey]:
        """Keys of all centroids within ``radius_km`` of ``origin``.

        Raises:
            GeoLookupError: If centroid data cannot be queried.
        """
        ...


class SqlCentroidLookup:
    """Centroid lookup against the postal_code_centroids table.

    Each query runs in a SAVEPOINT on the caller's session, so a failed
    lookup leaves the surrounding transaction usable for the contact query
    that follows.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fetch_rows(self, stmt: Select, failure: str) -> Sequence[Row]:
        try:
            async with self.db.begin_nested():
                result = await self.db.execute(stmt)
                return result.all()
        except SQLAlchemyError as e:
            raise GeoLookupError(f"{failure}: {e}") from e

    async def get_centroid(self, country: str, postal_code: str) -> Coordinates | None:
        key = postal_key(country, postal_code)
        if key is None:
            return None

        rows = await self._fetch_rows(
            select(PostalCodeCentroid.latitude, PostalCodeCentroid.longitude).where(
                PostalCodeCentroid.country_code == key.country_code,
                PostalCodeCentroid.postal_code == key.postal_code,
            ),
            "Centroid lookup failed",
        )
        if not rows:
            return None
        return Coordinates(rows[0].latitude, rows[0].longitude)

    async def within_radius(self, origin: Coordinates, radius_km: float) -> set[PostalKey]:
        min_lat, max_lat, min_lon, max_lon = bounding_box(origin, radius_km)

        rows = await self._fetch_rows(
            select(
                PostalCodeCentroid.country_code,
                PostalCodeCentroid.postal_code,
                PostalCodeCentroid.latitude,
                PostalCodeCentroid.longitude,
            ).where(
                PostalCodeCentroid.latitude.between(min_lat, max_lat),
                PostalCodeCentroid.longitude.between(min_lon, max_lon),
            ),
            "Radius lookup failed",
        )

        keys: set[PostalKey] = set()
        for row in rows:
            point = Coordinates(row.latitude, row.longitude)
            if haversine_km(origin, point) <= radius_km:
                keys.add(PostalKey(row.country_code, row.postal_code))

        logger.debug(
            "centroid_radius_lookup",
            radius_km=radius_km,
            candidates=len(rows),
            matched=len(keys),
        )
        return keys


class InMemoryCentroidLookup:
    """Centroid lookup over a preloaded mapping of normalized keys."""

    def __init__(self, centroids: Mapping[PostalKey, Coordinates]):
        self.centroids = dict(centroids)

    async def get_centroid(self, country: str, postal_code: str) -> Coordinates | None:
        key = postal_key(country, postal_code)
        if key is None:
            return None
        return self.centroids.get(key)

    async def within_radius(self, origin: Coordinates, radius_km: float) -> set[PostalKey]:
        return {
            key
            for key, point in self.centroids.items()
            if haversine_km(origin, point) <= radius_km
        }
