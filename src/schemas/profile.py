"""Profile Pydantic schemas for API request/response models."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProfileResponse(BaseModel):
    """Schema for profile API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Profile ID (same as the auth user ID)")
    first_name: str | None = Field(default=None, description="First name")
    last_name: str | None = Field(default=None, description="Last name")
    date_of_birth: date | None = Field(default=None, description="Date of birth")
    main_organization_id: UUID | None = Field(default=None, description="Default organization for navigation")
    created_at: datetime | None = Field(default=None, description="Profile creation timestamp")


class MainOrganizationResponse(BaseModel):
    """The user's main organization, if any."""

    model_config = ConfigDict(from_attributes=True)

    main_organization_id: UUID | None = Field(default=None, description="Main organization ID")
    organization_name: str | None = Field(default=None, description="Main organization name")


class MainOrganizationUpdate(BaseModel):
    """Schema for setting or clearing the main organization."""

    model_config = ConfigDict(from_attributes=True)

    organization_id: UUID | None = Field(..., description="Organization to make main, or null to clear")
