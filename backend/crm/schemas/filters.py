"""ContactFilter schemas: the JSON filter grammar stored on smart lists.

Each variant is discriminated on ``type``; field names and operator values
are part of the persisted and API contract and serialize back unchanged
(``model_dump(by_alias=True)``).

Shape errors (unknown type, field or operator, malformed id or date,
non-finite radius) are rejected. A filter with the right shape but an empty
required value is *incomplete*: it is accepted and later skipped by the
evaluator.
"""

import math
from datetime import UTC, date, datetime, time
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

from crm.core.exceptions import FilterValidationError

ContactFilterField = Literal[
    "name",
    "email",
    "phone",
    "pronouns",
    "city",
    "website",
    "address",
    "postalCode",
    "state",
    "country",
    "signal",
]


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class FilterBase(BaseModel):
    """Common config: camelCase aliases, population by either name."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def is_complete(self) -> bool:
        return True

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ContactFieldFilter(FilterBase):
    type: Literal["contactField"] = "contactField"
    field: ContactFilterField
    operator: Literal["has", "missing", "contains"]
    value: str | None = None

    def is_complete(self) -> bool:
        if self.operator == "contains":
            return bool(self.value and self.value.strip())
        return True


class AttributeFilter(FilterBase):
    type: Literal["attribute"] = "attribute"
    key: str = ""
    operator: Literal["contains", "equals"]
    value: str = ""

    def is_complete(self) -> bool:
        return bool(self.key.strip()) and bool(self.value.strip())


class GroupFilter(FilterBase):
    type: Literal["group"] = "group"
    group_id: UUID | None = Field(None, alias="groupId")

    @field_validator("group_id", mode="before")
    @classmethod
    def blank_group_id(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def is_complete(self) -> bool:
        return self.group_id is not None


class EventRoleFilter(FilterBase):
    type: Literal["eventRole"] = "eventRole"
    event_role_id: UUID | None = Field(None, alias="eventRoleId")

    @field_validator("event_role_id", mode="before")
    @classmethod
    def blank_event_role_id(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def is_complete(self) -> bool:
        return self.event_role_id is not None


class CreatedAtFilter(FilterBase):
    """Half-open creation range ``from <= created_at < to``.

    Date-only bounds mean midnight UTC of that day.
    """

    type: Literal["createdAt"] = "createdAt"
    from_: date | datetime | None = Field(None, alias="from")
    to: date | datetime | None = None

    @field_validator("from_", "to", mode="before")
    @classmethod
    def blank_bounds(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def is_complete(self) -> bool:
        return self.from_ is not None or self.to is not None

    @staticmethod
    def _as_datetime(value: datetime | date | None) -> datetime | None:
        if value is None:
            return None
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=UTC)
        return datetime.combine(value, time.min, tzinfo=UTC)

    @property
    def start(self) -> datetime | None:
        return self._as_datetime(self.from_)

    @property
    def end(self) -> datetime | None:
        return self._as_datetime(self.to)


class DistanceFilter(FilterBase):
    type: Literal["distance"] = "distance"
    postal_code: str = Field("", alias="postalCode")
    country_code: str = Field("", alias="countryCode")
    radius_km: float = Field(0, alias="radiusKm")

    @field_validator("radius_km")
    @classmethod
    def validate_radius(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("radiusKm must be a finite number")
        return v

    def is_complete(self) -> bool:
        return (
            bool(self.postal_code.strip())
            and bool(self.country_code.strip())
            and self.radius_km > 0
        )


ContactFilter = Annotated[
    ContactFieldFilter
    | AttributeFilter
    | GroupFilter
    | EventRoleFilter
    | CreatedAtFilter
    | DistanceFilter,
    Field(discriminator="type"),
]

_filter_adapter: TypeAdapter[ContactFilter] = TypeAdapter(ContactFilter)


def parse_filters(raw: Any) -> list[ContactFilter]:
    """Validate a raw filter array, raising FilterValidationError on bad shape.

    ``None`` is treated as an empty array. Each filter is validated on its
    own so the error names the offending position.
    """
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise FilterValidationError("Filters must be an array")

    parsed: list[ContactFilter] = []
    for index, item in enumerate(raw):
        if isinstance(item, FilterBase):
            parsed.append(item)
            continue
        try:
            parsed.append(_filter_adapter.validate_python(item))
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise FilterValidationError(
                f"Invalid filter at position {index}: {location}: {first['msg']}",
                index=index,
            ) from e
    return parsed


def dump_filters(filters: list[ContactFilter]) -> list[dict[str, Any]]:
    """Serialize filters to their persisted JSON shape."""
    return [f.to_json() for f in filters]
