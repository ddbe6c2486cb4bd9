"""Tests for postal-code centroid lookups."""

from unittest.mock import patch

import pytest
from sqlalchemy import select, text

from crm.core.exceptions import GeoLookupError
from crm.core.geo import Coordinates, PostalKey
from crm.models.contact import Contact
from crm.models.geo import PostalCodeCentroid
from crm.services.centroid_lookup import InMemoryCentroidLookup, SqlCentroidLookup


@pytest.fixture
def centroid_rows():
    return [
        PostalCodeCentroid(country_code="DE", postal_code="10115", latitude=52.5200, longitude=13.4050),
        PostalCodeCentroid(country_code="DE", postal_code="14467", latitude=52.3906, longitude=13.0645),
        PostalCodeCentroid(country_code="DE", postal_code="80331", latitude=48.1351, longitude=11.5820),
        PostalCodeCentroid(country_code="PL", postal_code="72-010", latitude=53.4285, longitude=14.5528),
    ]


class TestSqlCentroidLookup:
    """Tests for SqlCentroidLookup."""

    @pytest.mark.asyncio
    async def test_get_centroid_normalizes_input(self, db, centroid_rows):
        db.add_all(centroid_rows)
        await db.flush()

        centroid = await SqlCentroidLookup(db).get_centroid("germany", " 10115 ")

        assert centroid == Coordinates(52.5200, 13.4050)

    @pytest.mark.asyncio
    async def test_get_centroid_unknown_is_none(self, db, centroid_rows):
        db.add_all(centroid_rows)
        await db.flush()

        lookup = SqlCentroidLookup(db)

        assert await lookup.get_centroid("DE", "00000") is None
        assert await lookup.get_centroid("Atlantis", "10115") is None

    @pytest.mark.asyncio
    async def test_within_radius(self, db, centroid_rows):
        db.add_all(centroid_rows)
        await db.flush()

        keys = await SqlCentroidLookup(db).within_radius(Coordinates(52.5200, 13.4050), 150)

        assert keys == {
            PostalKey("DE", "10115"),
            PostalKey("DE", "14467"),
            PostalKey("PL", "72-010"),
        }

    @pytest.mark.asyncio
    async def test_database_error_is_wrapped_and_rolled_back(self, db, factory):
        team = await factory.team()
        await factory.contact(team, name="Kept")
        await db.execute(text("DROP TABLE postal_code_centroids"))
        lookup = SqlCentroidLookup(db)

        with patch.object(db, "begin_nested", wraps=db.begin_nested) as nested:
            with pytest.raises(GeoLookupError, match="Centroid lookup failed"):
                await lookup.get_centroid("DE", "10115")
            with pytest.raises(GeoLookupError, match="Radius lookup failed"):
                await lookup.within_radius(Coordinates(0, 0), 10)

        assert nested.call_count == 2
        result = await db.execute(select(Contact.name).where(Contact.team_id == team.id))
        assert result.scalars().all() == ["Kept"]


class TestInMemoryCentroidLookup:
    """Tests for InMemoryCentroidLookup."""

    @pytest.mark.asyncio
    async def test_lookup_and_radius(self):
        lookup = InMemoryCentroidLookup(
            {
                PostalKey("DE", "10115"): Coordinates(52.5200, 13.4050),
                PostalKey("DE", "80331"): Coordinates(48.1351, 11.5820),
            }
        )

        origin = await lookup.get_centroid("de", "10115")

        assert origin == Coordinates(52.5200, 13.4050)
        assert await lookup.within_radius(origin, 100) == {PostalKey("DE", "10115")}
