"""Postal code / country normalization and great-circle distance.

Contacts and postal-code centroids are joined on a ``(country_code,
postal_code)`` key, so both sides must pass through the same normalization.
"""

import math
import re
import unicodedata
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0088

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

# ISO 3166-1 alpha-2 code -> accepted names (English and native spellings)
EUROPEAN_COUNTRIES: dict[str, tuple[str, ...]] = {
    "AL": ("Albania", "Shqiperia", "Shqipëria"),
    "AD": ("Andorra",),
    "AT": ("Austria", "Oesterreich", "Österreich"),
    "BY": ("Belarus",),
    "BE": ("Belgium", "Belgie", "Belgique", "België"),
    "BA": ("Bosnia and Herzegovina", "Bosnia", "Herzegovina"),
    "BG": ("Bulgaria",),
    "HR": ("Croatia", "Hrvatska"),
    "CY": ("Cyprus",),
    "CZ": ("Czechia", "Czech Republic"),
    "DK": ("Denmark", "Danmark"),
    "EE": ("Estonia", "Eesti"),
    "FI": ("Finland", "Suomi"),
    "FR": ("France",),
    "DE": ("Germany", "Deutschland"),
    "GR": ("Greece", "Hellas", "Ελλάδα"),
    "HU": ("Hungary", "Magyarorszag", "Magyarország"),
    "IS": ("Iceland", "Island"),
    "IE": ("Ireland", "Eire", "Éire"),
    "IT": ("Italy", "Italia"),
    "XK": ("Kosovo",),
    "LV": ("Latvia", "Latvija"),
    "LI": ("Liechtenstein",),
    "LT": ("Lithuania", "Lietuva"),
    "LU": ("Luxembourg", "Luxemburg"),
    "MT": ("Malta",),
    "MD": ("Moldova", "Republic of Moldova"),
    "MC": ("Monaco",),
    "ME": ("Montenegro", "Crna Gora"),
    "NL": ("Netherlands", "Nederland", "The Netherlands", "Holland"),
    "MK": ("North Macedonia", "Macedonia", "Severna Makedonija"),
    "NO": ("Norway", "Norge", "Noreg"),
    "PL": ("Poland", "Polska"),
    "PT": ("Portugal",),
    "RO": ("Romania", "România"),
    "RU": ("Russia", "Russian Federation"),
    "SM": ("San Marino",),
    "RS": ("Serbia", "Srbija"),
    "SK": ("Slovakia", "Slovak Republic", "Slovensko"),
    "SI": ("Slovenia", "Slovenija"),
    "ES": ("Spain", "Espana", "España"),
    "SE": ("Sweden", "Sverige"),
    "CH": ("Switzerland", "Schweiz", "Suisse", "Svizzera"),
    "TR": ("Turkey", "Türkiye", "Turkiye"),
    "UA": ("Ukraine", "Ukraina", "Україна"),
    "GB": ("United Kingdom", "UK", "Great Britain", "Britain"),
    "VA": ("Vatican City", "Holy See"),
}


class Coordinates(NamedTuple):
    """A latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float


class PostalKey(NamedTuple):
    """Normalized join key between contacts and postal-code centroids."""

    country_code: str
    postal_code: str


def _fold_name(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM_RE.sub("", stripped.lower())


def _build_name_index() -> dict[str, str]:
    index: dict[str, str] = {}
    for code, names in EUROPEAN_COUNTRIES.items():
        index[code.lower()] = code
        for name in names:
            folded = _fold_name(name)
            if folded:
                index[folded] = code
    return index


_COUNTRY_NAME_INDEX = _build_name_index()


def normalize_postal_code(value: str | None) -> str | None:
    """Trim, upper-case and collapse internal whitespace; blank -> None."""
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    return _WHITESPACE_RE.sub(" ", trimmed.upper())


def normalize_country_code(value: str | None) -> str | None:
    """Map a country code or known country name to its ISO alpha-2 code.

    Returns None for blank or unrecognized input.
    """
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    upper = trimmed.upper()
    if len(upper) == 2 and upper in EUROPEAN_COUNTRIES:
        return upper

    return _COUNTRY_NAME_INDEX.get(_fold_name(trimmed))


def postal_key(country: str | None, postal_code: str | None) -> PostalKey | None:
    """Build a normalized join key, or None when either part is missing."""
    country_code = normalize_country_code(country)
    postal = normalize_postal_code(postal_code)
    if not country_code or not postal:
        return None
    return PostalKey(country_code, postal)


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def bounding_box(
    origin: Coordinates, radius_km: float
) -> tuple[float, float, float, float]:
    """Latitude/longitude box that contains the radius circle around origin.

    Returns (min_lat, max_lat, min_lon, max_lon). Near the poles, or when the
    circle crosses the antimeridian, the longitude range widens to the full
    [-180, 180] span.
    """
    angular = radius_km / EARTH_RADIUS_KM
    lat_delta = math.degrees(angular)
    min_lat = max(-90.0, origin.latitude - lat_delta)
    max_lat = min(90.0, origin.latitude + lat_delta)

    cos_lat = math.cos(math.radians(origin.latitude))
    if max_lat >= 90.0 or min_lat <= -90.0 or math.sin(angular) >= cos_lat:
        return min_lat, max_lat, -180.0, 180.0

    lon_delta = math.degrees(math.asin(math.sin(angular) / cos_lat))
    min_lon = origin.longitude - lon_delta
    max_lon = origin.longitude + lon_delta
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, min_lon, max_lon
