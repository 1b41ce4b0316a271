"""General invite link business logic service."""

import logging
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError as StorageError

from src.api.middleware.error_handler import ExpiredError, NotFoundError, from_storage_error
from src.core.config import get_settings
from src.core.supabase import get_supabase_client
from src.core.tokens import generate_token
from src.models.organization import Permission
from src.schemas.auth import UserContext
from src.schemas.general_invite_link import GeneralInviteLinkCreate
from src.services.organization_service import OrganizationService

logger = logging.getLogger(__name__)


class GeneralInviteLinkService:
    """Service for reusable, role-bound invite links."""

    def __init__(self) -> None:
        """Initialize general invite link service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = get_settings()

    def build_invite_url(self, token: str, locale: str) -> str:
        """Build the locale-aware deep link for a general invite link."""
        return f"{self.settings.frontend_url.rstrip('/')}/{locale}/invitations/general/{token}"

    def _with_url(self, link: dict[str, Any], locale: str) -> dict[str, Any]:
        return {**link, "invite_url": self.build_invite_url(link["token"], locale)}

    async def create_link(
        self,
        organization_id: UUID,
        data: GeneralInviteLinkCreate,
        creator: UserContext,
        locale: str,
    ) -> dict[str, Any]:
        """Create a general invite link for an organization.

        Args:
            organization_id: The organization's UUID.
            data: Role, approval flag and optional expiry.
            creator: The creating user; needs ``members:manage``.
            locale: Locale embedded in the returned deep link.

        Returns:
            dict: The link with role name, derived fields and ``invite_url``.

        Raises:
            AuthorizationError: If the creator lacks ``members:manage``.
            NotFoundError: If the organization does not exist.
            ValidationError: If the role does not belong to the organization type.
        """
        organizations = OrganizationService()
        await organizations.require_permission(organization_id, creator, Permission.MEMBERS_MANAGE)
        organization = await organizations.require_organization(organization_id)
        await organizations.require_role(organization, data.organization_role_id)

        try:
            response = self.client.rpc(
                "create_general_invite_link",
                {
                    "p_organization_id": str(organization_id),
                    "p_organization_role_id": data.organization_role_id,
                    "p_token": generate_token(),
                    "p_requires_approval": data.requires_approval,
                    "p_expires_at": data.expires_at.isoformat() if data.expires_at else None,
                    "p_created_by": str(creator.user_id),
                },
            ).execute()
        except StorageError as e:
            raise from_storage_error(
                e,
                not_found="organizations.not_found",
                fallback="invite_links.create_failed",
            ) from e

        created = response.data[0] if isinstance(response.data, list) else response.data
        logger.info("General invite link %s created for organization %s", created["id"], organization_id)

        overview = (
            self.client.table("general_invite_link_overview")
            .select("*")
            .eq("id", str(created["id"]))
            .execute()
        )
        link = overview.data[0] if overview.data else created
        return self._with_url(link, locale)

    async def list_links(self, organization_id: UUID, actor: UserContext, locale: str) -> list[dict[str, Any]]:
        """List an organization's links with usage counts and expiry state.

        Args:
            organization_id: The organization's UUID.
            actor: The requesting user; needs ``members:manage``.
            locale: Locale embedded in the deep links.

        Returns:
            list[dict]: Links, newest first.
        """
        await OrganizationService().require_permission(organization_id, actor, Permission.MEMBERS_MANAGE)

        response = (
            self.client.table("general_invite_link_overview")
            .select("*")
            .eq("organization_id", str(organization_id))
            .order("created_at", desc=True)
            .execute()
        )
        return [self._with_url(link, locale) for link in response.data or []]

    async def delete_link(self, organization_id: UUID, link_id: UUID, actor: UserContext) -> None:
        """Delete a link. Members already admitted through it stay members.

        Raises:
            AuthorizationError: If the actor is not an admin.
            NotFoundError: If the link is not in this organization.
        """
        await OrganizationService().require_admin(organization_id, actor)

        response = (
            self.client.table("general_invite_links")
            .delete()
            .eq("id", str(link_id))
            .eq("organization_id", str(organization_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("invite_links.not_found")

        logger.info("General invite link %s deleted by %s", link_id, actor.user_id)

    async def resolve_link(self, token: str) -> dict[str, Any]:
        """Look up a link by token.

        A pure read; ``is_expired`` comes from the database clock.

        Raises:
            NotFoundError: If no link has this token.
        """
        response = self.client.rpc("get_general_invite_link_by_token", {"p_token": token}).execute()
        if not response.data:
            raise NotFoundError("invite_links.not_found")
        return response.data[0]

    async def require_active_link(self, token: str) -> dict[str, Any]:
        """Resolve a link that has not expired.

        Raises:
            NotFoundError: If no link has this token.
            ExpiredError: If the link has expired (``data.is_expired``).
        """
        link = await self.resolve_link(token)
        if link["is_expired"]:
            raise ExpiredError("invite_links.expired", data={"is_expired": True})
        return link
