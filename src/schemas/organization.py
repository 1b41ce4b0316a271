"""Organization Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OrganizationCreate(BaseModel):
    """Schema for creating a new organization."""

    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., min_length=1, max_length=255, description="Organization name")
    organization_type_id: int = Field(..., gt=0, description="Organization type classifier")


class OrganizationResponse(BaseModel):
    """Schema for organization API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Organization unique identifier")
    name: str = Field(description="Organization display name")
    organization_type_id: int = Field(description="Organization type classifier")
    created_by: UUID | None = Field(default=None, description="User who founded the organization")
    created_at: datetime = Field(description="Creation timestamp")


class OrganizationRoleResponse(BaseModel):
    """Schema for an organization role (seat type)."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(description="Role identifier")
    organization_type_id: int = Field(description="Organization type the role belongs to")
    name: str = Field(description="Role name, e.g. admin or resident")
    description: str | None = Field(default=None, description="Human description of the role")


class OrganizationMemberResponse(BaseModel):
    """Schema for organization member API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Membership record ID")
    organization_id: UUID = Field(description="Organization ID")
    user_id: UUID = Field(description="Member's user ID")
    email: str | None = Field(default=None, description="Member email")
    first_name: str | None = Field(default=None, description="Member first name")
    last_name: str | None = Field(default=None, description="Member last name")
    organization_role_id: int = Field(description="Member's role ID")
    role_name: str | None = Field(default=None, description="Member's role name")
    invited_by: UUID | None = Field(default=None, description="User who invited the member")
    joined_at: datetime = Field(description="When the member joined")
