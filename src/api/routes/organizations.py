"""Organization, membership and role API routes."""

from uuid import UUID

from fastapi import APIRouter, Query, status

from src.api.deps import CurrentUser, Locale
from src.core.i18n import translate
from src.schemas.common import ApiResponse
from src.schemas.organization import (
    OrganizationCreate,
    OrganizationMemberResponse,
    OrganizationResponse,
    OrganizationRoleResponse,
)
from src.services.organization_service import OrganizationService

router = APIRouter(prefix="/organizations", tags=["organizations"])
roles_router = APIRouter(prefix="/organization-roles", tags=["organizations"])


@router.post(
    "",
    response_model=ApiResponse[OrganizationResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create an organization",
    description="Creates an organization with the authenticated user as its first admin.",
)
async def create_organization(
    data: OrganizationCreate,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[OrganizationResponse]:
    """Create a new organization.

    The creator becomes admin, and the organization becomes their main
    organization when they have none.
    """
    service = OrganizationService()
    organization = await service.create_organization(data, user)
    return ApiResponse(
        message=translate("organizations.created", locale),
        data=OrganizationResponse(**organization),
    )


@router.get(
    "/{organization_id}",
    response_model=ApiResponse[OrganizationResponse],
    summary="Get organization details",
    description="Returns organization details. Only accessible to members.",
)
async def get_organization(
    organization_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[OrganizationResponse]:
    """Get organization details.

    Raises:
        NotFoundError: 404 if the organization does not exist.
        AuthorizationError: 403 if the user is not a member.
    """
    service = OrganizationService()
    organization = await service.require_organization(organization_id)
    await service.require_member(organization_id, user)
    return ApiResponse(message=translate("common.ok", locale), data=OrganizationResponse(**organization))


@router.delete(
    "/{organization_id}",
    response_model=ApiResponse[None],
    summary="Delete an organization",
    description="Deletes an organization. Only an admin who is the last remaining member can do this.",
)
async def delete_organization(
    organization_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[None]:
    """Delete an organization."""
    service = OrganizationService()
    await service.delete_organization(organization_id, user)
    return ApiResponse(message=translate("organizations.deleted", locale))


@router.get(
    "/{organization_id}/members",
    response_model=ApiResponse[list[OrganizationMemberResponse]],
    summary="List organization members",
    description="Returns all members with their role and profile names.",
)
async def list_members(
    organization_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[list[OrganizationMemberResponse]]:
    """List members of an organization. Requires ``members:view``."""
    service = OrganizationService()
    members = await service.list_members(organization_id, user)
    return ApiResponse(
        message=translate("common.ok", locale),
        data=[OrganizationMemberResponse(**m) for m in members],
    )


@router.delete(
    "/{organization_id}/members/{member_id}",
    response_model=ApiResponse[OrganizationMemberResponse],
    summary="Remove a member",
    description="Removes a member. You cannot remove yourself or the last admin.",
)
async def remove_member(
    organization_id: UUID,
    member_id: UUID,
    user: CurrentUser,
    locale: Locale,
) -> ApiResponse[OrganizationMemberResponse]:
    """Remove a member from an organization. Requires ``members:manage``."""
    service = OrganizationService()
    member = await service.remove_member(organization_id, member_id, user)
    return ApiResponse(
        message=translate("members.removed", locale),
        data=OrganizationMemberResponse(**member),
    )


@roles_router.get(
    "",
    response_model=ApiResponse[list[OrganizationRoleResponse]],
    summary="List organization roles",
    description="Returns the role catalogue, optionally for one organization type.",
)
async def list_roles(
    user: CurrentUser,
    locale: Locale,
    organization_type_id: int | None = Query(default=None, gt=0, description="Organization type filter"),
) -> ApiResponse[list[OrganizationRoleResponse]]:
    """List roles for the invitation and link forms."""
    service = OrganizationService()
    roles = await service.list_roles(organization_type_id)
    return ApiResponse(
        message=translate("common.ok", locale),
        data=[OrganizationRoleResponse(**r) for r in roles],
    )
