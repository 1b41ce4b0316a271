"""Database model type definitions."""

from src.models.organization import (
    ADMIN_ROLE_NAME,
    OPEN_INVITATION_STATUSES,
    GeneralInviteLink,
    InvitationStatus,
    Organization,
    OrganizationInvitation,
    OrganizationMember,
    OrganizationRole,
    Permission,
)
from src.models.profile import Profile

__all__ = [
    "ADMIN_ROLE_NAME",
    "OPEN_INVITATION_STATUSES",
    "GeneralInviteLink",
    "InvitationStatus",
    "Organization",
    "OrganizationInvitation",
    "OrganizationMember",
    "OrganizationRole",
    "Permission",
    "Profile",
]
