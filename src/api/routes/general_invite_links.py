"""General invite link API routes."""

from uuid import UUID

from fastapi import APIRouter, status

from src.api.deps import CurrentUser, Locale, OptionalUser, PublicRateLimit
from src.core.i18n import translate
from src.schemas.common import ApiResponse
from src.schemas.general_invite_link import (
    GeneralInviteLinkCreate,
    GeneralInviteLinkDetails,
    GeneralInviteLinkResponse,
    GeneralLinkAcceptance,
    GeneralLinkAcceptRequest,
    GeneralLinkStatus,
)
from src.services.acceptance_service import AcceptanceService
from src.services.general_invite_link_service import GeneralInviteLinkService

router = APIRouter(tags=["general-invite-links"])


def _joined_message(result: dict, locale: str) -> str:
    key = "invite_links.request_pending" if result["requires_approval"] else "invite_links.joined"
    return translate(key, locale)


@router.post(
    "/organizations/{organization_id}/general-invite-links",
    response_model=ApiResponse[GeneralInviteLinkResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create a general invite link",
    description="Creates a reusable link granting a role, optionally with approval and expiry.",
)
async def create_link(
    organization_id: UUID,
    data: GeneralInviteLinkCreate,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[GeneralInviteLinkResponse]:
    """Create a general invite link. Requires ``members:manage``."""
    service = GeneralInviteLinkService()
    link = await service.create_link(organization_id, data, user, locale)
    return ApiResponse(message=translate("invite_links.created", locale), data=GeneralInviteLinkResponse(**link))


@router.get(
    "/organizations/{organization_id}/general-invite-links",
    response_model=ApiResponse[list[GeneralInviteLinkResponse]],
    summary="List general invite links",
    description="Returns links with usage counts and derived expiry.",
)
async def list_links(
    organization_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[list[GeneralInviteLinkResponse]]:
    """List an organization's general invite links."""
    service = GeneralInviteLinkService()
    links = await service.list_links(organization_id, user, locale)
    return ApiResponse(
        message=translate("common.ok", locale),
        data=[GeneralInviteLinkResponse(**link) for link in links],
    )


@router.delete(
    "/organizations/{organization_id}/general-invite-links/{link_id}",
    response_model=ApiResponse[None],
    summary="Delete a general invite link",
    description="Deletes a link. Members who already joined through it are unaffected.",
)
async def delete_link(
    organization_id: UUID,
    link_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[None]:
    """Delete a general invite link. Admins only."""
    service = GeneralInviteLinkService()
    await service.delete_link(organization_id, link_id, user)
    return ApiResponse(message=translate("invite_links.deleted", locale))


@router.get(
    "/general-invite-links/{token}",
    response_model=ApiResponse[GeneralInviteLinkDetails],
    summary="Resolve a general invite link",
    description="Returns public link details. 410 when expired.",
)
async def get_link(
    token: str,
    locale: Locale,
    _: PublicRateLimit,
) -> ApiResponse[GeneralInviteLinkDetails]:
    """Resolve a general invite link token."""
    service = GeneralInviteLinkService()
    link = await service.require_active_link(token)
    return ApiResponse(message=translate("invite_links.valid", locale), data=GeneralInviteLinkDetails(**link))


@router.get(
    "/general-invite-links/{token}/check-status",
    response_model=ApiResponse[GeneralLinkStatus],
    summary="Check the caller's status for a link",
    description="Reports login state, membership and any open request for the link's organization.",
)
async def check_link_status(
    token: str,
    user: OptionalUser,
    locale: Locale,
    _: PublicRateLimit,
) -> ApiResponse[GeneralLinkStatus]:
    """Check the caller's standing towards a link's organization."""
    service = AcceptanceService()
    result = await service.check_general_link_status(token, user)
    return ApiResponse(message=translate("common.ok", locale), data=GeneralLinkStatus(**result))


@router.post(
    "/general-invite-links/{token}/accept",
    response_model=ApiResponse[GeneralLinkAcceptance],
    status_code=status.HTTP_201_CREATED,
    summary="Join through a general invite link",
    description="Creates or signs in the account, then joins or requests to join the organization.",
)
async def accept_link(
    token: str,
    data: GeneralLinkAcceptRequest,
    user: OptionalUser,
    locale: Locale,
    _: PublicRateLimit,
) -> ApiResponse[GeneralLinkAcceptance]:
    """Join through a general invite link with submitted account details."""
    service = AcceptanceService()
    result = await service.accept_general_link(token, data, user)
    return ApiResponse(message=_joined_message(result, locale), data=GeneralLinkAcceptance(**result))


@router.post(
    "/general-invite-links/{token}/accept-logged-in",
    response_model=ApiResponse[GeneralLinkAcceptance],
    summary="Join through a general invite link with the current session",
    description="Uses the signed-in account and its profile names.",
)
async def accept_link_logged_in(
    token: str,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[GeneralLinkAcceptance]:
    """Join through a general invite link as the signed-in user."""
    service = AcceptanceService()
    result = await service.accept_general_link_logged_in(token, user)
    return ApiResponse(message=_joined_message(result, locale), data=GeneralLinkAcceptance(**result))
