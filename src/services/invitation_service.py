"""Personal invitation business logic service."""

import logging
from typing import Any
from uuid import UUID

from fastapi import status
from postgrest.exceptions import APIError as StorageError

from src.api.middleware.error_handler import (
    ConflictError,
    DependencyFailureError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    from_storage_error,
)
from src.core.config import get_settings
from src.core.supabase import create_user_client, get_supabase_client
from src.core.tokens import generate_token
from src.models.organization import OPEN_INVITATION_STATUSES, InvitationStatus, Permission
from src.schemas.auth import UserContext
from src.schemas.invitation import InvitationCreate
from src.services.email_service import EmailService
from src.services.organization_service import OrganizationService
from src.services.profile_service import ProfileService

logger = logging.getLogger(__name__)


class InvitationService:
    """Service for issuing, resolving and moderating personal invitations."""

    def __init__(self) -> None:
        """Initialize invitation service with Supabase client."""
        self.client = get_supabase_client()
        self.settings = get_settings()

    def build_invite_url(self, token: str, locale: str) -> str:
        """Build the locale-aware deep link for a personal invitation."""
        return f"{self.settings.frontend_url.rstrip('/')}/{locale}/invitations/{token}"

    async def create_invitation(
        self,
        organization_id: UUID,
        data: InvitationCreate,
        inviter: UserContext,
        locale: str,
    ) -> dict[str, Any]:
        """Issue a personal invitation and email it to the invitee.

        The invitation row is written first and the email sent second. If the
        email cannot be delivered the row is deleted again, so no invitation
        exists that its recipient never heard about.

        Args:
            organization_id: The organization's UUID.
            data: Invitee email, names, role and optional note.
            inviter: The issuing user; needs ``invites:create``.
            locale: Locale for the email and the deep link.

        Returns:
            dict: The invitation row plus ``role_name`` and ``invite_url``.

        Raises:
            AuthorizationError: If the inviter lacks ``invites:create``.
            NotFoundError: If the organization does not exist.
            ValidationError: If the role does not belong to the organization type.
            ConflictError: If the email already has an open invitation or membership.
            DependencyFailureError: If the email could not be sent.
        """
        organizations = OrganizationService()
        await organizations.require_permission(organization_id, inviter, Permission.INVITES_CREATE)
        organization = await organizations.require_organization(organization_id)
        role = await organizations.require_role(organization, data.organization_role_id)

        token = generate_token()
        try:
            response = self.client.rpc(
                "create_organization_invitation",
                {
                    "p_organization_id": str(organization_id),
                    "p_email": data.email.lower(),
                    "p_first_name": data.first_name,
                    "p_last_name": data.last_name,
                    "p_description": data.description,
                    "p_organization_role_id": data.organization_role_id,
                    "p_invited_by": str(inviter.user_id),
                    "p_token": token,
                    "p_expires_in_days": self.settings.invitation_expiry_days,
                },
            ).execute()
        except StorageError as e:
            raise from_storage_error(
                e,
                not_found="organizations.not_found",
                conflict="invitations.duplicate",
                fallback="invitations.create_failed",
            ) from e

        invitation = response.data[0] if isinstance(response.data, list) else response.data
        invite_url = self.build_invite_url(token, locale)
        logger.info(
            "Invitation %s issued for organization %s by %s",
            invitation["id"],
            organization_id,
            inviter.user_id,
        )

        result = await EmailService().send_invitation_email(
            to_email=invitation["email"],
            inviter_name=await self._inviter_name(inviter),
            organization_name=organization["name"],
            role_name=role["name"],
            invite_url=invite_url,
            locale=locale,
        )

        if not result["success"]:
            await self._delete_undelivered(invitation["id"])
            raise DependencyFailureError("invitations.email_failed")

        return {**invitation, "role_name": role["name"], "invite_url": invite_url}

    async def _inviter_name(self, inviter: UserContext) -> str:
        profile = await ProfileService().get_profile(inviter.user_id)
        if profile:
            name = " ".join(part for part in (profile.get("first_name"), profile.get("last_name")) if part)
            if name:
                return name
        return inviter.email or ""

    async def _delete_undelivered(self, invitation_id: str) -> None:
        try:
            self.client.table("organization_invitations").delete().eq("id", str(invitation_id)).execute()
            logger.warning("Invitation %s deleted after email delivery failed", invitation_id)
        except StorageError:
            logger.exception("Compensating delete failed for undelivered invitation %s", invitation_id)

    async def resolve_invitation(self, token: str) -> dict[str, Any]:
        """Look up an invitation by token.

        A pure read. ``is_expired`` is computed by the database at call time,
        so two calls around the expiry instant can disagree.

        Args:
            token: The invitation token.

        Returns:
            dict: Invitation with ``is_expired``, organization, role and inviter names.

        Raises:
            NotFoundError: If no invitation has this token.
        """
        response = self.client.rpc("get_invitation_by_token", {"p_token": token}).execute()
        if not response.data:
            raise NotFoundError("invitations.not_found")
        return response.data[0]

    async def require_open_invitation(self, token: str) -> dict[str, Any]:
        """Resolve an invitation that can still be accepted.

        Raises:
            NotFoundError: If no invitation has this token.
            ExpiredError: If the invitation has expired (``data.is_expired``).
            InvalidStateError: If it is no longer pending (410, ``data.status``).
        """
        invitation = await self.resolve_invitation(token)

        if invitation["is_expired"]:
            raise ExpiredError("invitations.expired", data={"is_expired": True})

        if invitation["status"] != InvitationStatus.PENDING.value:
            raise InvalidStateError("invitations.not_pending", data={"status": invitation["status"]})

        return invitation

    async def list_invitations(
        self,
        organization_id: UUID,
        actor: UserContext,
        status_filter: InvitationStatus | None = None,
    ) -> list[dict[str, Any]]:
        """List invitations issued by an organization, newest first.

        Args:
            organization_id: The organization's UUID.
            actor: The requesting user; needs ``invites:view``.
            status_filter: Optional stored status to filter on.

        Returns:
            list[dict]: Invitations with ``is_expired`` and ``is_from_general_link``.
        """
        await OrganizationService().require_permission(organization_id, actor, Permission.INVITES_VIEW)

        query = (
            self.client.table("organization_invitation_overview")
            .select("*")
            .eq("organization_id", str(organization_id))
        )
        if status_filter:
            query = query.eq("status", status_filter.value)

        response = query.order("created_at", desc=True).execute()
        return response.data or []

    async def _get_in_organization(self, organization_id: UUID, invitation_id: UUID) -> dict[str, Any]:
        response = (
            self.client.table("organization_invitations")
            .select("id, organization_id, email, status, user_id")
            .eq("id", str(invitation_id))
            .eq("organization_id", str(organization_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("invitations.not_found")
        return response.data[0]

    async def delete_invitation(self, organization_id: UUID, invitation_id: UUID, actor: UserContext) -> None:
        """Delete an invitation that has not been accepted.

        Raises:
            AuthorizationError: If the actor lacks ``members:manage``.
            NotFoundError: If the invitation is not in this organization.
            InvalidStateError: If the invitation was already accepted (400).
        """
        await OrganizationService().require_permission(organization_id, actor, Permission.MEMBERS_MANAGE)
        invitation = await self._get_in_organization(organization_id, invitation_id)

        if invitation["status"] == InvitationStatus.ACCEPTED.value:
            raise InvalidStateError("invitations.already_accepted", status_code=status.HTTP_400_BAD_REQUEST)

        self.client.table("organization_invitations").delete().eq("id", str(invitation_id)).execute()
        logger.info("Invitation %s deleted by %s", invitation_id, actor.user_id)

    async def approve_invitation(
        self,
        organization_id: UUID,
        invitation_id: UUID,
        actor: UserContext,
        locale: str,
    ) -> dict[str, Any]:
        """Approve a join request made through a general invite link.

        The membership insert and the status flip happen in one database
        call. Setting the main organization and the approval email follow
        and never undo the approval.

        Args:
            organization_id: The organization's UUID.
            invitation_id: The invitation to approve.
            actor: The approving user; needs ``members:manage``.
            locale: Locale for the approval email.

        Returns:
            dict: ``id``, ``organization_id``, ``email``, ``status`` and ``user_id``.

        Raises:
            NotFoundError: If the invitation is not in this organization.
            InvalidStateError: If it is not pending approval (400).
            ConflictError: If the user is already a member.
        """
        await OrganizationService().require_permission(organization_id, actor, Permission.MEMBERS_MANAGE)

        try:
            response = self.client.rpc(
                "approve_organization_invitation",
                {"p_invitation_id": str(invitation_id), "p_organization_id": str(organization_id)},
            ).execute()
        except StorageError as e:
            raise from_storage_error(
                e,
                not_found="invitations.not_found",
                invalid_state="invitations.not_pending_approval",
                conflict="invitations.already_member",
                fallback="invitations.accept_failed",
                invalid_state_status=status.HTTP_400_BAD_REQUEST,
            ) from e

        approved = response.data[0]
        user_id = UUID(str(approved["user_id"]))
        logger.info("Invitation %s approved by %s", invitation_id, actor.user_id)

        try:
            await ProfileService().ensure_main_organization(user_id, organization_id)
        except Exception:
            logger.exception("Failed to set main organization for %s after approval", user_id)

        result = await EmailService().send_approval_email(
            to_email=approved["email"],
            organization_name=approved["organization_name"],
            locale=locale,
        )
        if not result["success"]:
            logger.warning("Approval email for invitation %s was not delivered", invitation_id)

        return {
            "id": approved["invitation_id"],
            "organization_id": approved["organization_id"],
            "email": approved["email"],
            "status": approved["status"],
            "user_id": user_id,
        }

    async def reject_invitation(self, organization_id: UUID, invitation_id: UUID, actor: UserContext) -> dict[str, Any]:
        """Reject a join request made through a general invite link.

        The update only matches rows still in ``pending_approval``, so a
        request approved concurrently is never flipped back.

        Raises:
            NotFoundError: If the invitation is not in this organization.
            InvalidStateError: If it is not pending approval (400).
        """
        await OrganizationService().require_permission(organization_id, actor, Permission.MEMBERS_MANAGE)

        response = (
            self.client.table("organization_invitations")
            .update({"status": InvitationStatus.REJECTED.value})
            .eq("id", str(invitation_id))
            .eq("organization_id", str(organization_id))
            .eq("status", InvitationStatus.PENDING_APPROVAL.value)
            .execute()
        )

        if not response.data:
            await self._get_in_organization(organization_id, invitation_id)
            raise InvalidStateError("invitations.not_pending_approval", status_code=status.HTTP_400_BAD_REQUEST)

        rejected = response.data[0]
        logger.info("Invitation %s rejected by %s", invitation_id, actor.user_id)
        return {
            "id": rejected["id"],
            "organization_id": rejected["organization_id"],
            "email": rejected["email"],
            "status": rejected["status"],
            "user_id": rejected.get("user_id"),
        }

    async def cancel_stale_acceptances(
        self,
        organization_id: UUID | str,
        email: str,
        keep_invitation_id: UUID | str,
        access_token: str,
    ) -> int:
        """Cancel other accepted invitations for the same email, as the caller.

        Runs with the caller's row-level visibility, so rows the caller
        cannot see are left in place. Never raises.

        Returns:
            int: Number of rows cancelled.
        """
        try:
            response = (
                create_user_client(access_token)
                .table("organization_invitations")
                .update({"status": InvitationStatus.CANCELLED.value})
                .eq("organization_id", str(organization_id))
                .eq("email", email.lower())
                .eq("status", InvitationStatus.ACCEPTED.value)
                .neq("id", str(keep_invitation_id))
                .execute()
            )
        except Exception as e:
            logger.warning("Stale acceptance cleanup failed for %s in %s: %s", email, organization_id, str(e))
            return 0

        cancelled = len(response.data or [])
        logger.info("Stale acceptance cleanup for %s in %s cancelled %d rows", email, organization_id, cancelled)
        return cancelled

    async def purge_stale_acceptances(
        self,
        organization_id: UUID | str,
        email: str,
        keep_invitation_id: UUID | str,
    ) -> int:
        """Delete other accepted invitations for the same email with the privileged client.

        Returns:
            int: Number of rows deleted.

        Raises:
            DependencyFailureError: If the rows could not be deleted.
        """
        try:
            response = (
                self.client.table("organization_invitations")
                .delete()
                .eq("organization_id", str(organization_id))
                .eq("email", email.lower())
                .eq("status", InvitationStatus.ACCEPTED.value)
                .neq("id", str(keep_invitation_id))
                .execute()
            )
        except StorageError as e:
            raise from_storage_error(e, fallback="invitations.accept_failed") from e

        purged = len(response.data or [])
        logger.warning("Purged %d stale accepted invitations for %s in %s", purged, email, organization_id)
        return purged

    async def _is_member_of_link_org(self, link_token: str, user_id: UUID) -> bool:
        response = (
            self.client.table("general_invite_links")
            .select("organization_id")
            .eq("token", link_token)
            .execute()
        )
        if not response.data:
            return False
        return await OrganizationService().is_member(response.data[0]["organization_id"], user_id)

    async def find_open_invitation(self, organization_id: UUID | str, email: str) -> dict[str, Any] | None:
        """Find a pending or pending-approval invitation for an email."""
        response = (
            self.client.table("organization_invitations")
            .select("id, status")
            .eq("organization_id", str(organization_id))
            .eq("email", email.lower())
            .in_("status", [s.value for s in OPEN_INVITATION_STATUSES])
            .execute()
        )
        return response.data[0] if response.data else None

    async def spawn_from_link(
        self,
        link_token: str,
        email: str,
        first_name: str | None,
        last_name: str | None,
        user_id: UUID,
    ) -> dict[str, Any]:
        """Create an invitation for a user joining through a general link.

        The new invitation is ``pending_approval`` when the link requires
        approval and ``pending`` otherwise. It gets its own fresh token.

        Raises:
            NotFoundError: If the link no longer exists.
            ExpiredError: If the link expired in the meantime.
            ConflictError: If the user is a member or already has an open request.
        """
        try:
            response = self.client.rpc(
                "create_invitation_from_general_link",
                {
                    "p_link_token": link_token,
                    "p_email": email.lower(),
                    "p_first_name": first_name,
                    "p_last_name": last_name,
                    "p_user_id": str(user_id),
                    "p_token": generate_token(),
                    "p_expires_in_days": self.settings.invitation_expiry_days,
                },
            ).execute()
        except StorageError as e:
            error = from_storage_error(
                e,
                not_found="invite_links.not_found",
                expired="invite_links.expired",
                conflict="invite_links.already_requested",
                fallback="invitations.create_failed",
            )
            # The same unique violation is raised for an existing membership.
            if isinstance(error, ConflictError) and await self._is_member_of_link_org(link_token, user_id):
                error = ConflictError("invitations.already_member")
            raise error from e

        invitation = response.data[0] if isinstance(response.data, list) else response.data
        logger.info("Invitation %s spawned from general link for %s", invitation["id"], user_id)
        return invitation
