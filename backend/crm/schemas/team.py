"""Team Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from crm.models.group import AppModule


class TeamCreate(BaseModel):
    """Schema for creating a team. An empty module list enables every module."""

    name: str = Field(..., min_length=1, max_length=255)
    modules: list[AppModule] = []
    member_ids: list[UUID] = []


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    modules: list[AppModule]
    created_at: datetime


class TeamUserAdd(BaseModel):
    """Schema for joining a user to a team."""

    user_id: UUID


class TeamMembershipResponse(BaseModel):
    """Team membership result with the reconciliation it triggered."""

    team_id: UUID
    user_id: UUID
    default_group_id: UUID
    members_added: int
    members_removed: int
