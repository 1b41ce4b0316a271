"""Acceptance orchestration for personal invitations and general invite links."""

import logging
from typing import Any
from uuid import UUID

from src.api.middleware.error_handler import (
    APIError,
    AuthorizationError,
    ConflictError,
    ValidationError,
)
from src.models.organization import InvitationStatus
from src.schemas.auth import SessionTokens, UserContext
from src.schemas.general_invite_link import GeneralLinkAcceptRequest
from src.schemas.invitation import InvitationAcceptRequest
from src.services.admission_service import AdmissionService
from src.services.auth_service import AuthService
from src.services.general_invite_link_service import GeneralInviteLinkService
from src.services.invitation_service import InvitationService
from src.services.organization_service import OrganizationService
from src.services.profile_service import ProfileService

logger = logging.getLogger(__name__)


def _same_email(a: str | None, b: str | None) -> bool:
    return bool(a) and bool(b) and a.strip().lower() == b.strip().lower()


class AcceptanceService:
    """Drives an invitation or link from token to membership.

    Every call receives the acting user explicitly; nothing is read from
    the request. Each step that can fail before admission does so without
    writing anything except the account it may have created.
    """

    def __init__(self) -> None:
        """Initialize the collaborating services."""
        self.invitations = InvitationService()
        self.links = GeneralInviteLinkService()
        self.admission = AdmissionService()
        self.organizations = OrganizationService()
        self.profiles = ProfileService()
        self.auth = AuthService()

    async def _ensure_main_organization(self, user_id: UUID, organization_id: UUID | str) -> None:
        try:
            await self.profiles.ensure_main_organization(user_id, UUID(str(organization_id)))
        except Exception:
            logger.exception("Failed to set main organization %s for %s", organization_id, user_id)

    async def _resolve_account(
        self,
        email: str,
        password: str,
        first_name: str | None,
        last_name: str | None,
        date_of_birth: str | None,
    ) -> tuple[UUID, bool, SessionTokens | None]:
        """Sign in an existing account or create a new one with its profile.

        Returns:
            tuple: ``(user_id, is_new_user, session)``.

        Raises:
            ValidationError: If the email is registered and the password is wrong.
            DependencyFailureError: If the profile for a new account could not be written.
        """
        if await self.auth.user_exists(email):
            signed_in = await self.auth.sign_in(email, password)
            return signed_in["user_id"], False, signed_in["session"]

        try:
            created = await self.auth.sign_up(email, password, first_name, last_name)
        except ConflictError:
            signed_in = await self.auth.sign_in(email, password)
            return signed_in["user_id"], False, signed_in["session"]

        await self.profiles.create_profile(created["user_id"], first_name, last_name, date_of_birth)
        return created["user_id"], True, created["session"]

    async def check_invitation_email(self, token: str, actor: UserContext | None) -> dict[str, Any]:
        """Report account and session state for an invitation's email.

        Lets the accept page choose between sign up, sign in and a one-click
        accept for the logged-in invitee.
        """
        invitation = await self.invitations.resolve_invitation(token)
        email = invitation["email"]

        existing_user_id = await self.auth.user_exists(email)
        email_matches = actor is not None and _same_email(actor.email, email)
        is_already_member = bool(existing_user_id) and await self.organizations.is_member(
            invitation["organization_id"], existing_user_id
        )

        return {
            "email": email,
            "user_exists": existing_user_id is not None,
            "is_logged_in": actor is not None,
            "email_matches": email_matches,
            "user_id": actor.user_id if email_matches else None,
            "is_already_member": is_already_member,
        }

    async def accept_invitation(
        self,
        token: str,
        data: InvitationAcceptRequest | None,
        actor: UserContext | None = None,
    ) -> dict[str, Any]:
        """Accept a personal invitation.

        Steps, in order:

        1. Resolve the token: 404 absent, 410 expired, 410 not pending.
        2. A session for another email is rejected with 403.
        3. With a session, other accepted rows for the same email are
           cancelled using the caller's visibility. Failures only log.
        4. Without a session, sign in or sign up (with profile).
        5. Admit atomically, purging stale accepted rows and retrying once
           on conflict.
        6. Make the organization the user's main one if they lack one.

        Args:
            token: The invitation token.
            data: Password, date of birth and name overrides. Required
                without a session.
            actor: The caller's session, if any.

        Returns:
            dict: Admission outcome, including any session created here.

        Raises:
            NotFoundError: If the token is unknown.
            ExpiredError: If the invitation expired.
            InvalidStateError: If the invitation is not pending.
            AuthorizationError: If the session belongs to another email.
            ValidationError: If the email is registered and the password is wrong.
            ConflictError: If admission conflicts after the retry.
        """
        invitation = {**await self.invitations.require_open_invitation(token), "token": token}
        email = invitation["email"]
        organization_id = invitation["organization_id"]

        if actor is not None and not _same_email(actor.email, email):
            logger.info("Invitation %s opened by %s with a different email", invitation["id"], actor.user_id)
            raise AuthorizationError("invitations.email_mismatch")

        if actor is not None and actor.access_token:
            await self.invitations.cancel_stale_acceptances(organization_id, email, invitation["id"], actor.access_token)

        session: SessionTokens | None = None
        if actor is not None:
            user_id, is_new_user = actor.user_id, False
        else:
            if data is None:
                raise ValidationError()
            user_id, is_new_user, session = await self._resolve_account(
                email,
                data.password,
                data.first_name or invitation.get("first_name"),
                data.last_name or invitation.get("last_name"),
                data.date_of_birth,
            )

        admitted = await self.admission.admit_with_retry(invitation, user_id)

        if admitted["status"] == InvitationStatus.ACCEPTED.value:
            await self._ensure_main_organization(user_id, admitted["organization_id"])

        return {
            "user_id": user_id,
            "invitation_id": admitted["invitation_id"],
            "organization_id": admitted["organization_id"],
            "organization_name": admitted.get("organization_name"),
            "role_name": admitted.get("role_name"),
            "status": admitted["status"],
            "is_new_user": is_new_user,
            "session": session,
        }

    async def accept_invitation_logged_in(self, token: str, actor: UserContext) -> dict[str, Any]:
        """Accept a personal invitation with the caller's existing session."""
        return await self.accept_invitation(token, None, actor)

    async def check_general_link_status(self, token: str, actor: UserContext | None) -> dict[str, Any]:
        """Report the caller's standing towards a general link's organization."""
        link = await self.links.resolve_link(token)
        result: dict[str, Any] = {
            "is_logged_in": actor is not None,
            "email": actor.email if actor else None,
            "is_already_member": False,
            "has_pending_request": False,
            "pending_status": None,
            "requires_approval": link["requires_approval"],
            "is_expired": link["is_expired"],
        }
        if actor is None:
            return result

        result["is_already_member"] = await self.organizations.is_member(link["organization_id"], actor.user_id)
        if actor.email:
            open_invitation = await self.invitations.find_open_invitation(link["organization_id"], actor.email)
            if open_invitation:
                result["has_pending_request"] = True
                result["pending_status"] = open_invitation["status"]
        return result

    async def _join_through_link(
        self,
        link: dict[str, Any],
        token: str,
        email: str,
        first_name: str | None,
        last_name: str | None,
        user_id: UUID,
    ) -> dict[str, Any]:
        organization_id = link["organization_id"]

        if await self.invitations.find_open_invitation(organization_id, email):
            raise ConflictError("invite_links.already_requested")
        if await self.organizations.is_member(organization_id, user_id):
            raise ConflictError("invitations.already_member")

        invitation = await self.invitations.spawn_from_link(token, email, first_name, last_name, user_id)
        status = invitation["status"]

        if not link["requires_approval"]:
            try:
                admitted = await self.admission.admit_with_retry(invitation, user_id)
                status = admitted["status"]
                await self._ensure_main_organization(user_id, organization_id)
            except Exception as e:
                # The account and invitation stay; the invitation remains pending.
                logger.error(
                    "Automatic admission after general link failed",
                    exc_info=not isinstance(e, APIError),
                    extra={
                        "invitation_id": str(invitation["id"]),
                        "user_id": str(user_id),
                        "error_code": e.error_type if isinstance(e, APIError) else "dependency_failure",
                    },
                )

        return {
            "invitation_id": invitation["id"],
            "email": email,
            "status": status,
            "requires_approval": link["requires_approval"],
            "organization_id": organization_id,
            "organization_name": link.get("organization_name"),
        }

    async def accept_general_link(
        self,
        token: str,
        data: GeneralLinkAcceptRequest,
        actor: UserContext | None = None,
    ) -> dict[str, Any]:
        """Join, or request to join, an organization through a general link.

        Steps, in order:

        1. Resolve the link: 404 absent, 410 expired.
        2. Sign in or sign up. A session for the submitted email is used as is.
        3. 409 if the email has an open invitation or the account is a member.
        4. Spawn an invitation, ``pending_approval`` or ``pending``.
        5. Without approval, admit and set the main organization. An
           admission failure is logged and the request still succeeds.

        Args:
            token: The general link token.
            data: Email, names, password and date of birth.
            actor: The caller's session, if any.

        Returns:
            dict: Request outcome, including any session created here.
        """
        link = await self.links.require_active_link(token)
        email = data.email.lower()

        session: SessionTokens | None = None
        if actor is not None and _same_email(actor.email, email):
            user_id, is_new_user = actor.user_id, False
        else:
            user_id, is_new_user, session = await self._resolve_account(
                email,
                data.password,
                data.first_name,
                data.last_name,
                data.date_of_birth,
            )

        outcome = await self._join_through_link(link, token, email, data.first_name, data.last_name, user_id)
        return {**outcome, "user_id": user_id, "is_new_user": is_new_user, "session": session}

    async def accept_general_link_logged_in(self, token: str, actor: UserContext) -> dict[str, Any]:
        """Join through a general link with the caller's session and profile.

        Raises:
            ValidationError: If the caller's profile lacks a first or last name.
        """
        link = await self.links.require_active_link(token)

        profile = await self.profiles.get_profile(actor.user_id)
        if not actor.email or not profile or not profile.get("first_name") or not profile.get("last_name"):
            raise ValidationError("invite_links.profile_incomplete")

        outcome = await self._join_through_link(
            link,
            token,
            actor.email.lower(),
            profile["first_name"],
            profile["last_name"],
            actor.user_id,
        )
        return {**outcome, "user_id": actor.user_id, "is_new_user": False, "session": None}
