"""Organization, role and membership business logic service."""

import logging
from typing import Any
from uuid import UUID

from fastapi import status
from postgrest.exceptions import APIError as StorageError

from src.api.middleware.error_handler import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
    from_storage_error,
)
from src.core.supabase import get_supabase_client
from src.models.organization import ADMIN_ROLE_NAME, Permission
from src.schemas.auth import UserContext
from src.schemas.organization import OrganizationCreate
from src.services.profile_service import ProfileService

logger = logging.getLogger(__name__)


class OrganizationService:
    """Service for organizations, their roles and their members."""

    def __init__(self) -> None:
        """Initialize organization service with Supabase client."""
        self.client = get_supabase_client()

    async def create_organization(self, data: OrganizationCreate, actor: UserContext) -> dict[str, Any]:
        """Create an organization with the actor as its first admin.

        The organization and the admin membership are written by one
        database function. The new organization becomes the actor's main
        organization if they have none.

        Args:
            data: Organization creation data.
            actor: The founding user.

        Returns:
            dict: The created organization row.

        Raises:
            ValidationError: If the organization type has no admin role.
        """
        try:
            response = self.client.rpc(
                "create_organization",
                {
                    "p_name": data.name,
                    "p_organization_type_id": data.organization_type_id,
                    "p_user_id": str(actor.user_id),
                },
            ).execute()
        except StorageError as e:
            error = from_storage_error(e, not_found="roles.not_found", fallback="organizations.create_failed")
            if isinstance(error, NotFoundError):
                raise ValidationError("roles.not_found") from e
            raise error from e

        organization = response.data[0] if isinstance(response.data, list) else response.data
        logger.info("Organization %s created by %s", organization["id"], actor.user_id)

        await ProfileService().ensure_main_organization(actor.user_id, UUID(str(organization["id"])))
        return organization

    async def get_organization(self, organization_id: UUID) -> dict[str, Any] | None:
        """Get an organization by ID.

        Args:
            organization_id: The organization's UUID.

        Returns:
            dict | None: The organization data or None if not found.
        """
        response = (
            self.client.table("organizations")
            .select("*")
            .eq("id", str(organization_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def require_organization(self, organization_id: UUID) -> dict[str, Any]:
        """Get an organization or raise NotFoundError."""
        organization = await self.get_organization(organization_id)
        if not organization:
            raise NotFoundError("organizations.not_found")
        return organization

    async def has_permission(self, organization_id: UUID, user_id: UUID, permission: Permission) -> bool:
        """Check whether a user's role in an organization grants a permission.

        Args:
            organization_id: The organization's UUID.
            user_id: The user's UUID.
            permission: Permission code to check.

        Returns:
            bool: True if the user holds the permission.
        """
        response = self.client.rpc(
            "has_permission",
            {
                "p_user_id": str(user_id),
                "p_organization_id": str(organization_id),
                "p_permission": permission.value,
            },
        ).execute()

        return bool(response.data)

    async def require_permission(self, organization_id: UUID, actor: UserContext, permission: Permission) -> None:
        """Raise AuthorizationError unless the actor holds the permission."""
        if not await self.has_permission(organization_id, actor.user_id, permission):
            logger.info(
                "User %s lacks %s in organization %s",
                actor.user_id,
                permission.value,
                organization_id,
            )
            raise AuthorizationError()

    async def get_membership(self, organization_id: UUID, user_id: UUID) -> dict[str, Any] | None:
        """Get a user's membership in an organization with its role name.

        Args:
            organization_id: The organization's UUID.
            user_id: The user's UUID.

        Returns:
            dict | None: The membership row or None if not a member.
        """
        response = (
            self.client.table("organization_member_overview")
            .select("*")
            .eq("organization_id", str(organization_id))
            .eq("user_id", str(user_id))
            .execute()
        )

        return response.data[0] if response.data else None

    async def is_member(self, organization_id: UUID, user_id: UUID) -> bool:
        """Check if a user is a member of an organization."""
        return await self.get_membership(organization_id, user_id) is not None

    async def require_member(self, organization_id: UUID, actor: UserContext) -> dict[str, Any]:
        """Get the actor's membership or raise AuthorizationError."""
        membership = await self.get_membership(organization_id, actor.user_id)
        if not membership:
            raise AuthorizationError("organizations.not_member")
        return membership

    async def require_admin(self, organization_id: UUID, actor: UserContext) -> dict[str, Any]:
        """Get the actor's membership, raising unless their role is admin."""
        membership = await self.get_membership(organization_id, actor.user_id)
        if not membership or membership.get("role_name") != ADMIN_ROLE_NAME:
            raise AuthorizationError("organizations.admin_required")
        return membership

    async def get_role(self, organization: dict[str, Any], role_id: int) -> dict[str, Any] | None:
        """Get a role that is valid for the organization's type.

        Args:
            organization: The organization row.
            role_id: The role ID to look up.

        Returns:
            dict | None: The role or None if it does not apply to the organization.
        """
        response = (
            self.client.table("organization_roles")
            .select("*")
            .eq("id", role_id)
            .eq("organization_type_id", organization["organization_type_id"])
            .execute()
        )

        return response.data[0] if response.data else None

    async def require_role(self, organization: dict[str, Any], role_id: int) -> dict[str, Any]:
        """Get a role for the organization or raise ValidationError (400)."""
        role = await self.get_role(organization, role_id)
        if not role:
            raise ValidationError("roles.not_found")
        return role

    async def list_roles(self, organization_type_id: int | None = None) -> list[dict[str, Any]]:
        """List organization roles, optionally for one organization type.

        Args:
            organization_type_id: Optional organization type filter.

        Returns:
            list[dict]: Roles ordered by ID.
        """
        query = self.client.table("organization_roles").select("*")
        if organization_type_id is not None:
            query = query.eq("organization_type_id", organization_type_id)

        response = query.order("id").execute()
        return response.data or []

    async def list_members(self, organization_id: UUID, actor: UserContext) -> list[dict[str, Any]]:
        """List the members of an organization.

        Args:
            organization_id: The organization's UUID.
            actor: The requesting user; needs ``members:view``.

        Returns:
            list[dict]: Members with profile and role names, oldest first.
        """
        await self.require_organization(organization_id)
        await self.require_permission(organization_id, actor, Permission.MEMBERS_VIEW)

        response = (
            self.client.table("organization_member_overview")
            .select("*")
            .eq("organization_id", str(organization_id))
            .order("joined_at")
            .execute()
        )

        return response.data or []

    async def is_last_admin(self, organization_id: UUID, user_id: UUID) -> bool:
        """Check whether the user is the only admin left in the organization."""
        response = self.client.rpc(
            "is_last_admin_in_organization",
            {"p_organization_id": str(organization_id), "p_user_id": str(user_id)},
        ).execute()

        return bool(response.data)

    async def remove_member(self, organization_id: UUID, member_id: UUID, actor: UserContext) -> dict[str, Any]:
        """Remove a member from an organization.

        When the organization was the removed user's main organization, a
        new main is picked afterwards. That step never blocks the removal.

        Args:
            organization_id: The organization's UUID.
            member_id: The membership record ID to remove.
            actor: The requesting user; needs ``members:manage``.

        Returns:
            dict: The removed membership row.

        Raises:
            NotFoundError: If the membership is not in this organization.
            ValidationError: If removing yourself or the last admin.
        """
        await self.require_permission(organization_id, actor, Permission.MEMBERS_MANAGE)

        response = (
            self.client.table("organization_member_overview")
            .select("*")
            .eq("id", str(member_id))
            .eq("organization_id", str(organization_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("members.not_found")

        member = response.data[0]
        member_user_id = UUID(str(member["user_id"]))

        if member_user_id == actor.user_id:
            raise ValidationError("members.cannot_remove_self")

        if member.get("role_name") == ADMIN_ROLE_NAME and await self.is_last_admin(organization_id, member_user_id):
            raise ValidationError("members.last_admin")

        self.client.table("organization_members").delete().eq("id", str(member_id)).execute()
        logger.info("Member %s removed from organization %s by %s", member_user_id, organization_id, actor.user_id)

        try:
            await ProfileService().recalculate_main_organization(member_user_id, removed_organization_id=organization_id)
        except Exception:
            logger.exception(
                "Failed to recalculate main organization for %s after removal from %s",
                member_user_id,
                organization_id,
            )

        return member

    async def delete_organization(self, organization_id: UUID, actor: UserContext) -> None:
        """Delete an organization whose only remaining member is the actor.

        Args:
            organization_id: The organization's UUID.
            actor: The requesting admin.

        Raises:
            NotFoundError: If the organization does not exist.
            AuthorizationError: If the actor is not an admin.
            InvalidStateError: If other members remain (400).
        """
        await self.require_organization(organization_id)
        await self.require_admin(organization_id, actor)

        try:
            self.client.rpc(
                "delete_organization",
                {"p_organization_id": str(organization_id), "p_user_id": str(actor.user_id)},
            ).execute()
        except StorageError as e:
            raise from_storage_error(
                e,
                not_found="organizations.not_found",
                invalid_state="organizations.has_members",
                invalid_state_status=status.HTTP_400_BAD_REQUEST,
            ) from e

        logger.info("Organization %s deleted by %s", organization_id, actor.user_id)

        try:
            await ProfileService().recalculate_main_organization(actor.user_id, removed_organization_id=organization_id)
        except Exception:
            logger.exception("Failed to recalculate main organization for %s", actor.user_id)
