"""Atomic admission of an account into an organization through an invitation."""

import logging
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError as StorageError

from src.api.middleware.error_handler import ConflictError, from_storage_error
from src.core.supabase import get_supabase_client
from src.services.invitation_service import InvitationService
from src.services.organization_service import OrganizationService

logger = logging.getLogger(__name__)


class AdmissionService:
    """Runs the admission step and its single stale-row retry."""

    def __init__(self) -> None:
        """Initialize admission service with Supabase client."""
        self.client = get_supabase_client()

    async def admit(self, token: str, user_id: UUID) -> dict[str, Any]:
        """Admit a user through a pending invitation.

        The database function locks the invitation, re-checks that it exists,
        has not expired and is still pending, inserts the membership and
        marks the invitation accepted. Either all of it happens or none.

        Args:
            token: The invitation token.
            user_id: The account being admitted.

        Returns:
            dict: ``invitation_id``, ``organization_id``, ``organization_name``,
                ``role_name`` and ``status``.

        Raises:
            NotFoundError: If the invitation disappeared.
            ExpiredError: If it expired since it was resolved.
            InvalidStateError: If it is no longer pending (410).
            ConflictError: If a membership or accepted invitation already exists.
        """
        try:
            response = self.client.rpc(
                "accept_organization_invitation",
                {"p_token": token, "p_user_id": str(user_id)},
            ).execute()
        except StorageError as e:
            raise from_storage_error(
                e,
                not_found="invitations.not_found",
                expired="invitations.expired",
                invalid_state="invitations.not_pending",
                conflict="invitations.already_member",
                fallback="invitations.accept_failed",
            ) from e

        admitted = response.data[0]
        logger.info("User %s admitted to organization %s", user_id, admitted["organization_id"])
        return admitted

    async def admit_with_retry(self, invitation: dict[str, Any], user_id: UUID) -> dict[str, Any]:
        """Admit a user, clearing stale accepted rows once on conflict.

        A conflict caused by an existing membership is final. Any other
        conflict comes from an older accepted invitation for the same email;
        those rows are deleted with the privileged client and admission is
        tried exactly once more.

        Args:
            invitation: The invitation with ``id``, ``token``,
                ``organization_id`` and ``email``.
            user_id: The account being admitted.

        Returns:
            dict: The admission result.

        Raises:
            ConflictError: If the retry conflicts too, or the user is already a member.
        """
        try:
            return await self.admit(invitation["token"], user_id)
        except ConflictError:
            if await OrganizationService().is_member(invitation["organization_id"], user_id):
                raise

            logger.warning(
                "Admission conflict for invitation %s, purging stale accepted rows and retrying",
                invitation["id"],
            )
            await InvitationService().purge_stale_acceptances(
                invitation["organization_id"],
                invitation["email"],
                invitation["id"],
            )

        return await self.admit(invitation["token"], user_id)
