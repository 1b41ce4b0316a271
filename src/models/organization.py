"""Organization, membership and invitation type definitions for database operations."""

from datetime import datetime
from enum import Enum
from typing import TypedDict
from uuid import UUID


class InvitationStatus(str, Enum):
    """Stored invitation status values matching the database enum.

    ``expired`` is deliberately absent: expiry is derived from ``expires_at``
    at read time and never written.
    """

    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


OPEN_INVITATION_STATUSES = (InvitationStatus.PENDING, InvitationStatus.PENDING_APPROVAL)


class Permission(str, Enum):
    """Permission codes granted to organization roles."""

    INVITES_CREATE = "invites:create"
    INVITES_VIEW = "invites:view"
    MEMBERS_MANAGE = "members:manage"
    MEMBERS_VIEW = "members:view"


ADMIN_ROLE_NAME = "admin"


class Organization(TypedDict):
    """Organizations table row representation."""

    id: UUID
    name: str
    organization_type_id: int
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime


class OrganizationRole(TypedDict):
    """Organization role (seat type) row, scoped to an organization type."""

    id: int
    organization_type_id: int
    name: str
    description: str | None


class OrganizationMember(TypedDict):
    """Membership row binding a user to an organization with a role.

    At most one row exists per (organization_id, user_id).
    """

    id: UUID
    organization_id: UUID
    user_id: UUID
    organization_role_id: int
    invited_by: UUID | None
    joined_at: datetime


class OrganizationInvitation(TypedDict):
    """Invitation row, either personal or spawned from a general invite link."""

    id: UUID
    organization_id: UUID
    email: str
    first_name: str | None
    last_name: str | None
    description: str | None
    organization_role_id: int
    invited_by: UUID | None
    user_id: UUID | None
    general_invite_link_id: UUID | None
    token: str
    status: InvitationStatus
    expires_at: datetime
    accepted_at: datetime | None
    created_at: datetime


class GeneralInviteLink(TypedDict):
    """Reusable, role-bound invite link row."""

    id: UUID
    organization_id: UUID
    organization_role_id: int
    token: str
    requires_approval: bool
    expires_at: datetime | None
    created_by: UUID | None
    created_at: datetime
