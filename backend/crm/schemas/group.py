"""Group Pydantic schemas for team-scoped access control."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from crm.models.group import AppModule, ContactSubmodule


class GroupCreate(BaseModel):
    """Schema for creating a group. Modules default to all when omitted."""

    team_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    can_access_all_contacts: bool = False
    user_ids: list[UUID] = []
    modules: list[AppModule] | None = None
    contact_submodules: list[ContactSubmodule] = []


class GroupUpdate(BaseModel):
    """Schema for updating a group; omitted fields are unchanged."""

    team_id: UUID
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    can_access_all_contacts: bool | None = None
    modules: list[AppModule] | None = None
    contact_submodules: list[ContactSubmodule] | None = None


class GroupsDeleteRequest(BaseModel):
    team_id: UUID
    ids: list[UUID] = Field(..., min_length=1)


class GroupUsersRequest(BaseModel):
    team_id: UUID
    user_ids: list[UUID]


class GroupResponse(BaseModel):
    """Group response schema (without members)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    team_id: UUID
    name: str
    description: str | None = None
    can_access_all_contacts: bool
    is_default_group: bool
    modules: list[AppModule]
    contact_submodules: list[ContactSubmodule]
    created_at: datetime
    updated_at: datetime


class GroupUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    display_name: str
    email: str


class GroupDetailResponse(GroupResponse):
    """Group with its member list."""

    users: list[GroupUserResponse] = []


class GroupMembershipChange(BaseModel):
    count: int


class ReconcileRequest(BaseModel):
    team_id: UUID


class ReconcileResponse(BaseModel):
    """Outcome of a default-group reconciliation."""

    team_id: UUID
    default_group_id: UUID
    created: bool
    promoted: bool
    invariants_repaired: bool
    members_added: int
    members_removed: int


class ModuleAccessResponse(BaseModel):
    """Modules and contact submodules available to the acting user."""

    team_id: UUID
    modules: list[AppModule]
    contact_submodules: list[ContactSubmodule]
    hidden_contact_fields: list[str] = []
