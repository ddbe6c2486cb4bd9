"""Event and event role Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from crm.schemas.contact import ContactResponse


class EventRoleCreate(BaseModel):
    team_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    color: str | None = Field(None, max_length=20)


class EventRoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    team_id: UUID
    name: str
    color: str | None = None


class EventParticipantInput(BaseModel):
    contact_id: UUID
    role_ids: list[UUID] = []


class EventCreate(BaseModel):
    """Schema for creating an event with its participants."""

    team_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    location: str | None = Field(None, max_length=500)
    start_date: datetime
    end_date: datetime | None = None
    participants: list[EventParticipantInput] = []

    @model_validator(mode="after")
    def validate_dates(self) -> "EventCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    team_id: UUID
    title: str
    description: str | None = None
    location: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    created_at: datetime


class EventParticipantResponse(BaseModel):
    contact: ContactResponse
    roles: list[EventRoleResponse] = []
