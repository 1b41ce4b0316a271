"""General invite link Pydantic schemas for API request/response models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.models.organization import InvitationStatus
from src.schemas.auth import SessionTokens
from src.schemas.invitation import DATE_OF_BIRTH_PATTERN, MIN_PASSWORD_LENGTH, not_blank, valid_date_of_birth


class GeneralInviteLinkCreate(BaseModel):
    """Schema for creating a general invite link.

    Omitting ``expires_at`` creates a link that never expires.
    """

    model_config = ConfigDict(from_attributes=True)

    organization_role_id: int = Field(..., gt=0, description="Role granted to people joining via the link")
    requires_approval: bool = Field(default=False, description="Whether each use needs admin approval")
    expires_at: datetime | None = Field(default=None, description="Optional expiry timestamp (ISO 8601)")


class GeneralInviteLinkResponse(BaseModel):
    """General invite link as shown to organization admins."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Link unique identifier")
    organization_id: UUID = Field(description="Organization ID")
    organization_role_id: int = Field(description="Role granted by the link")
    role_name: str | None = Field(default=None, description="Role name")
    role_description: str | None = Field(default=None, description="Role description")
    requires_approval: bool = Field(description="Whether each use needs admin approval")
    expires_at: datetime | None = Field(default=None, description="Expiry timestamp, if any")
    is_expired: bool = Field(default=False, description="Derived: whether expires_at has passed")
    usage_count: int = Field(default=0, description="Derived: invitations spawned from this link")
    invite_url: str = Field(description="Shareable deep link")
    created_by: UUID | None = Field(default=None, description="Admin who created the link")
    created_at: datetime = Field(description="Creation timestamp")


class GeneralInviteLinkDetails(BaseModel):
    """Public view of a general invite link resolved by token."""

    model_config = ConfigDict(from_attributes=True)

    organization_name: str = Field(description="Organization display name")
    role_name: str | None = Field(default=None, description="Role granted by the link")
    role_description: str | None = Field(default=None, description="Role description")
    requires_approval: bool = Field(description="Whether joining needs admin approval")
    expires_at: datetime | None = Field(default=None, description="Expiry timestamp, if any")
    is_expired: bool = Field(description="Derived: whether expires_at has passed")


class GeneralLinkStatus(BaseModel):
    """Caller's standing with respect to a general invite link's organization."""

    model_config = ConfigDict(from_attributes=True)

    is_logged_in: bool = Field(description="Whether the caller presented a session")
    email: str | None = Field(default=None, description="Caller's email, when logged in")
    is_already_member: bool = Field(default=False, description="Whether the caller already belongs to the organization")
    has_pending_request: bool = Field(default=False, description="Whether the caller already has an open invitation")
    pending_status: InvitationStatus | None = Field(default=None, description="Status of the open invitation, if any")
    requires_approval: bool = Field(description="Whether joining needs admin approval")
    is_expired: bool = Field(description="Derived: whether the link has expired")


class GeneralLinkAcceptRequest(BaseModel):
    """Body for joining through a general invite link without a session."""

    model_config = ConfigDict(from_attributes=True)

    email: EmailStr = Field(..., description="Email for the new or existing account")
    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Last name")
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=100, description="Account password")
    date_of_birth: str = Field(..., pattern=DATE_OF_BIRTH_PATTERN, description="Date of birth (YYYY-MM-DD)")

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        """Reject blank names and trim surrounding whitespace."""
        return not_blank(value)

    @field_validator("date_of_birth")
    @classmethod
    def check_date_of_birth(cls, value: str) -> str:
        """Ensure the date exists and is not in the future."""
        return valid_date_of_birth(value)


class GeneralLinkAcceptance(BaseModel):
    """Outcome of joining through a general invite link."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Account that requested to join")
    invitation_id: UUID = Field(description="Invitation spawned from the link")
    email: str = Field(description="Account email")
    status: InvitationStatus = Field(description="accepted, pending or pending_approval")
    requires_approval: bool = Field(description="Whether the request awaits an admin")
    organization_id: UUID = Field(description="Organization ID")
    organization_name: str | None = Field(default=None, description="Organization display name")
    is_new_user: bool = Field(description="Whether an account was created")
    session: SessionTokens | None = Field(default=None, description="Session created during the request, if any")
