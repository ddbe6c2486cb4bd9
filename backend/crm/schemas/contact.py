"""Contact Pydantic schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from crm.models.contact import ChangeAction, ContactAttributeType


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ContactLocationValue(BaseModel):
    """Value of a LOCATION attribute."""

    label: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class ContactAttributeInput(BaseModel):
    """Profile attribute as submitted; invalid or empty values are dropped."""

    key: str
    type: ContactAttributeType = ContactAttributeType.STRING
    value: str | float | ContactLocationValue | None = None


class ContactAttributeResponse(BaseModel):
    key: str
    type: ContactAttributeType
    value: str | float | ContactLocationValue | None = None


class ContactBase(BaseModel):
    """Base contact schema."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    signal: str | None = Field(None, max_length=50)
    pronouns: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=500)
    address: str | None = None
    postal_code: str | None = Field(None, max_length=20)
    city: str | None = Field(None, max_length=255)
    state: str | None = Field(None, max_length=255)
    country: str | None = Field(None, max_length=255)
    group_id: UUID | None = None

    @field_validator(
        "email",
        "phone",
        "signal",
        "pronouns",
        "website",
        "address",
        "postal_code",
        "city",
        "state",
        "country",
        "group_id",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class ContactCreate(ContactBase):
    """Schema for creating a contact."""

    team_id: UUID
    attributes: list[ContactAttributeInput] = []


class ContactUpdate(BaseModel):
    """Schema for updating a contact; only fields that are sent change."""

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    signal: str | None = Field(None, max_length=50)
    pronouns: str | None = Field(None, max_length=50)
    website: str | None = Field(None, max_length=500)
    address: str | None = None
    postal_code: str | None = Field(None, max_length=20)
    city: str | None = Field(None, max_length=255)
    state: str | None = Field(None, max_length=255)
    country: str | None = Field(None, max_length=255)
    group_id: UUID | None = None
    attributes: list[ContactAttributeInput] | None = None

    @field_validator(
        "email",
        "phone",
        "signal",
        "pronouns",
        "website",
        "address",
        "postal_code",
        "city",
        "state",
        "country",
        "group_id",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)


class ContactResponse(ContactBase):
    """Contact response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    team_id: UUID
    email: str | None = None
    country_code: str | None = None
    created_at: datetime
    updated_at: datetime


class ContactDetail(ContactResponse):
    """Contact with its profile attributes."""

    attributes: list[ContactAttributeResponse] = []


class ContactListResponse(BaseModel):
    """Page of contacts matching a search."""

    items: list[ContactResponse]
    total: int
    limit: int
    offset: int


class ContactsDeleteRequest(BaseModel):
    team_id: UUID
    ids: list[UUID] = Field(..., min_length=1)


class ContactChangeLogResponse(BaseModel):
    """Contact change log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    contact_id: UUID
    action: ChangeAction
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    user_id: UUID | None = None
    user_name: str | None = None
    created_at: datetime


class AttributeKeysResponse(BaseModel):
    keys: list[str]


class ContactSearchRequest(BaseModel):
    """Free-text query plus a ContactFilter array, evaluated for the caller."""

    team_id: UUID
    query: str | None = None
    filters: list[dict[str, Any]] | None = None
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)
