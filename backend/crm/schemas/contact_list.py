"""Contact list Pydantic schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from crm.models.contact_list import ContactListType
from crm.schemas.contact import ContactResponse


class ContactListCreate(BaseModel):
    """Schema for creating a contact list.

    ``filters`` is the raw ContactFilter array; it is validated by the
    service so shape errors report the failing position.
    """

    team_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    type: ContactListType = ContactListType.MANUAL
    filters: list[dict[str, Any]] | None = None
    contact_ids: list[UUID] = []


class ContactListUpdate(BaseModel):
    team_id: UUID
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    type: ContactListType | None = None
    filters: list[dict[str, Any]] | None = None


class ContactListMembersRequest(BaseModel):
    team_id: UUID
    contact_ids: list[UUID] = Field(..., min_length=1)


class ContactListsDeleteRequest(BaseModel):
    team_id: UUID
    ids: list[UUID] = Field(..., min_length=1)


class ContactListResponse(BaseModel):
    """Contact list summary with the count visible to the caller."""

    id: UUID
    team_id: UUID
    name: str
    description: str | None = None
    type: ContactListType
    filters: list[dict[str, Any]] | None = None
    contact_count: int = 0
    created_at: datetime
    updated_at: datetime


class ContactListDetail(ContactListResponse):
    """Contact list with its (visible) contacts."""

    contacts: list[ContactResponse] = []


class MembershipChangeResponse(BaseModel):
    count: int
