"""Personal invitation Pydantic schemas for API request/response models."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from src.models.organization import InvitationStatus
from src.schemas.auth import SessionTokens

MIN_PASSWORD_LENGTH = 6
DATE_OF_BIRTH_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def not_blank(value: str | None) -> str | None:
    """Strip a name and reject it if nothing is left."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


def valid_date_of_birth(value: str | None) -> str | None:
    """Check a YYYY-MM-DD string is a real, past date."""
    if value is None:
        return None
    birth_date = date.fromisoformat(value)
    if birth_date > date.today():
        raise ValueError("date of birth cannot be in the future")
    return value


class InvitationCreate(BaseModel):
    """Schema for issuing a personal invitation."""

    model_config = ConfigDict(from_attributes=True)

    email: EmailStr = Field(..., description="Email address to invite")
    first_name: str = Field(..., min_length=1, max_length=100, description="Invitee first name")
    last_name: str = Field(..., min_length=1, max_length=100, description="Invitee last name")
    organization_role_id: int = Field(..., gt=0, description="Role the invitee will hold")
    description: str | None = Field(default=None, max_length=500, description="Optional note, e.g. unit number")

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str | None) -> str | None:
        """Reject blank names and trim surrounding whitespace."""
        return not_blank(value)


class InvitationIssued(BaseModel):
    """Response for a newly issued personal invitation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Invitation unique identifier")
    organization_id: UUID = Field(description="Organization being invited to")
    email: str = Field(description="Invited email address")
    first_name: str | None = Field(default=None, description="Invitee first name")
    last_name: str | None = Field(default=None, description="Invitee last name")
    organization_role_id: int = Field(description="Target role ID")
    role_name: str | None = Field(default=None, description="Target role name")
    status: InvitationStatus = Field(description="Current invitation status")
    expires_at: datetime = Field(description="Invitation expiration timestamp")
    invite_url: str = Field(description="Locale-aware deep link sent by email")


class InvitationSummary(BaseModel):
    """Invitation row as listed to organization admins."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Invitation unique identifier")
    organization_id: UUID = Field(description="Organization ID")
    email: str = Field(description="Invited email address")
    first_name: str | None = Field(default=None, description="Invitee first name")
    last_name: str | None = Field(default=None, description="Invitee last name")
    description: str | None = Field(default=None, description="Optional note")
    organization_role_id: int = Field(description="Target role ID")
    role_name: str | None = Field(default=None, description="Target role name")
    invited_by: UUID | None = Field(default=None, description="User who issued the invitation")
    status: InvitationStatus = Field(description="Stored invitation status")
    expires_at: datetime = Field(description="Invitation expiration timestamp")
    is_expired: bool = Field(description="Derived: whether expires_at has passed")
    is_from_general_link: bool = Field(description="Whether the invitation was spawned by a general link")
    accepted_at: datetime | None = Field(default=None, description="When the invitation was accepted")
    created_at: datetime = Field(description="Creation timestamp")


class InvitationDetails(BaseModel):
    """Public view of an invitation resolved by token."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Invitation unique identifier")
    organization_id: UUID = Field(description="Organization ID")
    organization_name: str = Field(description="Organization display name")
    email: str = Field(description="Invited email address")
    first_name: str | None = Field(default=None, description="Invitee first name")
    last_name: str | None = Field(default=None, description="Invitee last name")
    description: str | None = Field(default=None, description="Optional note")
    role_name: str | None = Field(default=None, description="Target role name")
    role_description: str | None = Field(default=None, description="Target role description")
    inviter_name: str | None = Field(default=None, description="Name of the inviter")
    status: InvitationStatus = Field(description="Stored invitation status")
    expires_at: datetime = Field(description="Invitation expiration timestamp")
    is_expired: bool = Field(description="Derived: whether expires_at has passed")


class InvitationEmailCheck(BaseModel):
    """Account and session state for an invitation's email address."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(description="Invited email address")
    user_exists: bool = Field(description="Whether an account already exists for the email")
    is_logged_in: bool = Field(description="Whether the caller presented a session")
    email_matches: bool = Field(description="Whether the caller's session email is the invited email")
    user_id: UUID | None = Field(default=None, description="Caller's user ID when the email matches")
    is_already_member: bool = Field(description="Whether the invited account already belongs to the organization")


class InvitationAcceptRequest(BaseModel):
    """Body for accepting a personal invitation without a session.

    ``date_of_birth`` is only needed when a new account is created.
    """

    model_config = ConfigDict(from_attributes=True)

    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=100, description="Account password")
    date_of_birth: str | None = Field(
        default=None,
        pattern=DATE_OF_BIRTH_PATTERN,
        description="Date of birth (YYYY-MM-DD)",
    )
    first_name: str | None = Field(default=None, max_length=100, description="Overrides the invited first name")
    last_name: str | None = Field(default=None, max_length=100, description="Overrides the invited last name")

    @field_validator("date_of_birth")
    @classmethod
    def check_date_of_birth(cls, value: str | None) -> str | None:
        """Ensure the date exists and is not in the future."""
        return valid_date_of_birth(value)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str | None) -> str | None:
        """Reject blank names and trim surrounding whitespace."""
        return not_blank(value)


class InvitationAcceptance(BaseModel):
    """Outcome of accepting a personal invitation."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Admitted user ID")
    invitation_id: UUID = Field(description="Accepted invitation ID")
    organization_id: UUID = Field(description="Organization joined")
    organization_name: str | None = Field(default=None, description="Organization display name")
    role_name: str | None = Field(default=None, description="Role granted")
    status: InvitationStatus = Field(description="Final invitation status")
    is_new_user: bool = Field(description="Whether an account was created during acceptance")
    session: SessionTokens | None = Field(default=None, description="Session created during acceptance, if any")


class InvitationStatusChange(BaseModel):
    """Result of an admin approving or rejecting an invitation."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Invitation unique identifier")
    organization_id: UUID = Field(description="Organization ID")
    email: str = Field(description="Invited email address")
    status: InvitationStatus = Field(description="New invitation status")
    user_id: UUID | None = Field(default=None, description="Admitted user ID, when approved")
