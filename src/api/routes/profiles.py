"""Profile and main-organization API routes."""

from fastapi import APIRouter

from src.api.deps import CurrentUser, Locale
from src.core.i18n import translate
from src.schemas.common import ApiResponse
from src.schemas.profile import MainOrganizationResponse, MainOrganizationUpdate, ProfileResponse
from src.services.profile_service import ProfileService

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get(
    "/me",
    response_model=ApiResponse[ProfileResponse],
    summary="Get current user's profile",
    description="Returns the authenticated user's profile information.",
)
async def get_my_profile(user: CurrentUser, locale: Locale) -> ApiResponse[ProfileResponse]:
    """Get the authenticated user's profile.

    Raises:
        NotFoundError: 404 if the user has no profile.
    """
    service = ProfileService()
    profile = await service.require_profile(user.user_id)
    return ApiResponse(message=translate("common.ok", locale), data=ProfileResponse(**profile))


@router.get(
    "/main-organization",
    response_model=ApiResponse[MainOrganizationResponse],
    summary="Get main organization",
    description="Returns the user's default organization. A pointer to a left organization is cleared.",
)
async def get_main_organization(user: CurrentUser, locale: Locale) -> ApiResponse[MainOrganizationResponse]:
    """Get the authenticated user's main organization."""
    service = ProfileService()
    result = await service.get_main_organization(user.user_id)
    return ApiResponse(message=translate("common.ok", locale), data=MainOrganizationResponse(**result))


@router.put(
    "/main-organization",
    response_model=ApiResponse[MainOrganizationResponse],
    summary="Set main organization",
    description="Sets the default organization to one the user belongs to, or clears it with null.",
)
async def update_main_organization(
    data: MainOrganizationUpdate,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[MainOrganizationResponse]:
    """Set or clear the authenticated user's main organization.

    Raises:
        AuthorizationError: 403 if the user is not a member of the organization.
    """
    service = ProfileService()
    result = await service.update_main_organization(user.user_id, data.organization_id)
    return ApiResponse(
        message=translate("profiles.main_organization_updated", locale),
        data=MainOrganizationResponse(**result),
    )
