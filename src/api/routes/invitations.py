"""Personal invitation API routes.

Organization-scoped endpoints are for admins. Token-scoped endpoints are
public (rate limited) and drive the invitee's accept page.
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.api.deps import CurrentUser, Locale, OptionalUser, PublicRateLimit
from src.core.i18n import translate
from src.models.organization import InvitationStatus
from src.schemas.common import ApiResponse
from src.schemas.invitation import (
    InvitationAcceptance,
    InvitationAcceptRequest,
    InvitationCreate,
    InvitationDetails,
    InvitationEmailCheck,
    InvitationIssued,
    InvitationStatusChange,
    InvitationSummary,
)
from src.services.acceptance_service import AcceptanceService
from src.services.invitation_service import InvitationService

router = APIRouter(tags=["invitations"])


@router.post(
    "/organizations/{organization_id}/invitations",
    response_model=ApiResponse[InvitationIssued],
    status_code=status.HTTP_201_CREATED,
    summary="Invite someone by email",
    description="Issues a personal invitation and emails the deep link. Requires invites:create.",
)
async def create_invitation(
    organization_id: UUID,
    data: InvitationCreate,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[InvitationIssued]:
    """Issue a personal invitation.

    If the email cannot be delivered the invitation is removed again and
    the request fails with 500.
    """
    service = InvitationService()
    invitation = await service.create_invitation(organization_id, data, user, locale)
    return ApiResponse(message=translate("invitations.created", locale), data=InvitationIssued(**invitation))


@router.get(
    "/organizations/{organization_id}/invitations",
    response_model=ApiResponse[list[InvitationSummary]],
    summary="List organization invitations",
    description="Returns invitations with their derived expiry. Requires invites:view.",
)
async def list_invitations(
    organization_id: UUID,
    user: CurrentUser,
    locale: Locale,
    status_filter: InvitationStatus | None = Query(default=None, alias="status", description="Stored status filter"),
) -> ApiResponse[list[InvitationSummary]]:
    """List an organization's invitations, newest first."""
    service = InvitationService()
    invitations = await service.list_invitations(organization_id, user, status_filter)
    return ApiResponse(
        message=translate("common.ok", locale),
        data=[InvitationSummary(**i) for i in invitations],
    )


@router.delete(
    "/organizations/{organization_id}/invitations/{invitation_id}",
    response_model=ApiResponse[None],
    summary="Delete an invitation",
    description="Deletes an invitation that has not been accepted. Requires members:manage.",
)
async def delete_invitation(
    organization_id: UUID,
    invitation_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[None]:
    """Delete an invitation."""
    service = InvitationService()
    await service.delete_invitation(organization_id, invitation_id, user)
    return ApiResponse(message=translate("invitations.deleted", locale))


@router.post(
    "/organizations/{organization_id}/invitations/{invitation_id}/approve",
    response_model=ApiResponse[InvitationStatusChange],
    summary="Approve a join request",
    description="Admits the requester of a general-link invitation pending approval.",
)
async def approve_invitation(
    organization_id: UUID,
    invitation_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[InvitationStatusChange]:
    """Approve an invitation in ``pending_approval``."""
    service = InvitationService()
    result = await service.approve_invitation(organization_id, invitation_id, user, locale)
    return ApiResponse(message=translate("invitations.approved", locale), data=InvitationStatusChange(**result))


@router.post(
    "/organizations/{organization_id}/invitations/{invitation_id}/reject",
    response_model=ApiResponse[InvitationStatusChange],
    summary="Reject a join request",
    description="Rejects a general-link invitation pending approval.",
)
async def reject_invitation(
    organization_id: UUID,
    invitation_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[InvitationStatusChange]:
    """Reject an invitation in ``pending_approval``."""
    service = InvitationService()
    result = await service.reject_invitation(organization_id, invitation_id, user)
    return ApiResponse(message=translate("invitations.rejected", locale), data=InvitationStatusChange(**result))


@router.get(
    "/invitations/{token}",
    response_model=ApiResponse[InvitationDetails],
    summary="Resolve an invitation",
    description="Returns invitation details for the accept page. 410 when expired or no longer pending.",
)
async def get_invitation(
    token: str,
    locale: Locale,
    _: PublicRateLimit,
) -> ApiResponse[InvitationDetails]:
    """Resolve an invitation token."""
    service = InvitationService()
    invitation = await service.require_open_invitation(token)
    return ApiResponse(message=translate("invitations.valid", locale), data=InvitationDetails(**invitation))


@router.get(
    "/invitations/{token}/check-email",
    response_model=ApiResponse[InvitationEmailCheck],
    summary="Check the invited email",
    description="Reports whether the invited email has an account and whether the caller is signed in as it.",
)
async def check_invitation_email(
    token: str,
    user: OptionalUser,
    locale: Locale,
    _: PublicRateLimit,
) -> ApiResponse[InvitationEmailCheck]:
    """Check account and session state for an invitation's email."""
    service = AcceptanceService()
    result = await service.check_invitation_email(token, user)
    return ApiResponse(message=translate("common.ok", locale), data=InvitationEmailCheck(**result))


@router.post(
    "/invitations/{token}/accept",
    response_model=ApiResponse[InvitationAcceptance],
    summary="Accept an invitation",
    description="Signs the invitee up or in with the submitted password, then admits them.",
)
async def accept_invitation(
    token: str,
    data: InvitationAcceptRequest,
    user: OptionalUser,
    locale: Locale,
    _: PublicRateLimit,
) -> ApiResponse[InvitationAcceptance]:
    """Accept a personal invitation without (or with) a session."""
    service = AcceptanceService()
    result = await service.accept_invitation(token, data, user)
    return ApiResponse(message=translate("invitations.accepted", locale), data=InvitationAcceptance(**result))


@router.post(
    "/invitations/{token}/accept-logged-in",
    response_model=ApiResponse[InvitationAcceptance],
    summary="Accept an invitation with the current session",
    description="Admits the signed-in user. The session email must match the invitation.",
)
async def accept_invitation_logged_in(
    token: str,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[InvitationAcceptance]:
    """Accept a personal invitation as the signed-in user."""
    service = AcceptanceService()
    result = await service.accept_invitation_logged_in(token, user)
    return ApiResponse(message=translate("invitations.accepted", locale), data=InvitationAcceptance(**result))
