"""Unit tests for AcceptanceService."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import UUID

import pytest

from src.api.middleware.error_handler import (
    AuthorizationError,
    ConflictError,
    DependencyFailureError,
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.schemas.auth import SessionTokens, UserContext
from src.schemas.general_invite_link import GeneralLinkAcceptRequest
from src.schemas.invitation import InvitationAcceptRequest
from src.services.acceptance_service import AcceptanceService
from src.services.admission_service import AdmissionService

USER_ID = UUID("550e8400-e29b-41d4-a716-446655440000")
NEW_USER_ID = UUID("660e8400-e29b-41d4-a716-446655440000")
ORG_ID = "770e8400-e29b-41d4-a716-446655440000"
INVITATION_ID = "aa0e8400-e29b-41d4-a716-446655440000"
SESSION = SessionTokens(access_token="access", refresh_token="refresh", expires_in=3600)


def invitation(**overrides) -> dict:
    row = {
        "id": INVITATION_ID,
        "organization_id": ORG_ID,
        "organization_name": "Torre Norte",
        "email": "alice@example.com",
        "first_name": "Alice",
        "last_name": "Silva",
        "status": "pending",
        "is_expired": False,
    }
    row.update(overrides)
    return row


def admitted(status: str = "accepted") -> dict:
    return {
        "invitation_id": INVITATION_ID,
        "organization_id": ORG_ID,
        "organization_name": "Torre Norte",
        "role_name": "resident",
        "status": status,
    }


def link(requires_approval: bool = False) -> dict:
    return {
        "organization_id": ORG_ID,
        "organization_name": "Torre Norte",
        "requires_approval": requires_approval,
        "is_expired": False,
    }


@pytest.fixture
def service(fake_supabase) -> AcceptanceService:
    """Create AcceptanceService with every collaborator replaced."""
    with patch("src.services.auth_service.create_auth_client"):
        acceptance = AcceptanceService()

    acceptance.invitations = MagicMock()
    acceptance.invitations.require_open_invitation = AsyncMock(return_value=invitation())
    acceptance.invitations.resolve_invitation = AsyncMock(return_value=invitation())
    acceptance.invitations.cancel_stale_acceptances = AsyncMock(return_value=0)
    acceptance.invitations.find_open_invitation = AsyncMock(return_value=None)
    acceptance.invitations.spawn_from_link = AsyncMock(
        return_value={"id": INVITATION_ID, "token": "spawned", "organization_id": ORG_ID, "status": "pending"}
    )

    acceptance.links = MagicMock()
    acceptance.links.require_active_link = AsyncMock(return_value=link())
    acceptance.links.resolve_link = AsyncMock(return_value=link())

    acceptance.admission = MagicMock()
    acceptance.admission.admit_with_retry = AsyncMock(return_value=admitted())

    acceptance.organizations = MagicMock()
    acceptance.organizations.is_member = AsyncMock(return_value=False)

    acceptance.profiles = MagicMock()
    acceptance.profiles.ensure_main_organization = AsyncMock(return_value=True)
    acceptance.profiles.create_profile = AsyncMock(return_value={"id": str(NEW_USER_ID)})
    acceptance.profiles.get_profile = AsyncMock(return_value={"first_name": "Alice", "last_name": "Silva"})

    acceptance.auth = MagicMock()
    acceptance.auth.user_exists = AsyncMock(return_value=None)
    acceptance.auth.sign_up = AsyncMock(
        return_value={"user_id": NEW_USER_ID, "email": "alice@example.com", "session": SESSION}
    )
    acceptance.auth.sign_in = AsyncMock(
        return_value={"user_id": USER_ID, "email": "alice@example.com", "session": SESSION}
    )
    return acceptance


def accept_body(**overrides) -> InvitationAcceptRequest:
    return InvitationAcceptRequest(**{"password": "secret1", "date_of_birth": "1990-05-01", **overrides})


def link_body(**overrides) -> GeneralLinkAcceptRequest:
    return GeneralLinkAcceptRequest(
        **{
            "email": "alice@example.com",
            "first_name": "Alice",
            "last_name": "Silva",
            "password": "secret1",
            "date_of_birth": "1990-05-01",
            **overrides,
        }
    )


class TestAcceptInvitation:
    """Tests for accept_invitation method."""

    @pytest.mark.asyncio
    async def test_new_account_is_created_and_admitted(self, service: AcceptanceService) -> None:
        """Test the anonymous happy path for an unknown email."""
        result = await service.accept_invitation("tok", accept_body())

        assert result["is_new_user"] is True
        assert result["user_id"] == NEW_USER_ID
        assert result["session"] == SESSION
        assert result["status"] == "accepted"
        service.auth.sign_up.assert_awaited_once_with("alice@example.com", "secret1", "Alice", "Silva")
        service.profiles.create_profile.assert_awaited_once_with(NEW_USER_ID, "Alice", "Silva", "1990-05-01")
        service.admission.admit_with_retry.assert_awaited_once_with({**invitation(), "token": "tok"}, NEW_USER_ID)
        service.profiles.ensure_main_organization.assert_awaited_once_with(NEW_USER_ID, UUID(ORG_ID))

    @pytest.mark.asyncio
    async def test_existing_account_signs_in(self, service: AcceptanceService) -> None:
        """Test that a registered email signs in instead of signing up."""
        service.auth.user_exists.return_value = USER_ID

        result = await service.accept_invitation("tok", accept_body())

        assert result["is_new_user"] is False
        assert result["user_id"] == USER_ID
        service.auth.sign_up.assert_not_awaited()
        service.profiles.create_profile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signup_race_falls_back_to_sign_in(self, service: AcceptanceService) -> None:
        """Test that an account created concurrently is signed into."""
        service.auth.sign_up.side_effect = ConflictError("accounts.email_registered")

        result = await service.accept_invitation("tok", accept_body())

        assert result["user_id"] == USER_ID
        assert result["is_new_user"] is False

    @pytest.mark.asyncio
    async def test_wrong_password_stops_before_admission(self, service: AcceptanceService) -> None:
        """Test that a rejected password writes nothing."""
        service.auth.user_exists.return_value = USER_ID
        service.auth.sign_in.side_effect = ValidationError("accounts.email_registered")

        with pytest.raises(ValidationError):
            await service.accept_invitation("tok", accept_body())

        service.admission.admit_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_name_overrides_win(self, service: AcceptanceService) -> None:
        """Test that submitted names override the invited ones."""
        await service.accept_invitation("tok", accept_body(first_name="Ali"))

        service.auth.sign_up.assert_awaited_once_with("alice@example.com", "secret1", "Ali", "Silva")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            NotFoundError("invitations.not_found"),
            ExpiredError("invitations.expired", data={"is_expired": True}),
            InvalidStateError("invitations.not_pending", data={"status": "accepted"}),
        ],
    )
    async def test_unusable_token_writes_nothing(self, service: AcceptanceService, error) -> None:
        """Test that token failures happen before any account work."""
        service.invitations.require_open_invitation.side_effect = error

        with pytest.raises(type(error)):
            await service.accept_invitation("tok", accept_body())

        service.auth.user_exists.assert_not_awaited()
        service.admission.admit_with_retry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_logged_in_invitee_uses_session(self, service: AcceptanceService, user_context) -> None:
        """Test that a matching session is admitted without credentials."""
        result = await service.accept_invitation("tok", None, user_context)

        assert result["user_id"] == user_context.user_id
        assert result["session"] is None
        service.auth.user_exists.assert_not_awaited()
        service.invitations.cancel_stale_acceptances.assert_awaited_once_with(
            ORG_ID, "alice@example.com", INVITATION_ID, "user-access-token"
        )

    @pytest.mark.asyncio
    async def test_session_email_compared_case_insensitively(self, service: AcceptanceService) -> None:
        """Test that email casing does not cause a mismatch."""
        actor = UserContext(user_id=USER_ID, email="ALICE@Example.com", access_token="jwt")

        result = await service.accept_invitation("tok", None, actor)

        assert result["user_id"] == USER_ID

    @pytest.mark.asyncio
    async def test_other_email_session_is_forbidden(self, service: AcceptanceService) -> None:
        """Test that a session for another email is refused with 403."""
        actor = UserContext(user_id=USER_ID, email="mallory@example.com", access_token="jwt")

        with pytest.raises(AuthorizationError) as exc_info:
            await service.accept_invitation("tok", None, actor)

        assert exc_info.value.message == "invitations.email_mismatch"
        service.admission.admit_with_retry.assert_not_awaited()
        service.invitations.cancel_stale_acceptances.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_anonymous_without_body_is_invalid(self, service: AcceptanceService) -> None:
        """Test that credentials are required without a session."""
        with pytest.raises(ValidationError):
            await service.accept_invitation("tok", None, None)

    @pytest.mark.asyncio
    async def test_conflict_after_retry_propagates(self, service: AcceptanceService, user_context) -> None:
        """Test that an unresolvable conflict reaches the caller."""
        service.admission.admit_with_retry.side_effect = ConflictError("invitations.already_member")

        with pytest.raises(ConflictError):
            await service.accept_invitation("tok", None, user_context)

        service.profiles.ensure_main_organization.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_main_organization_failure_is_not_fatal(self, service: AcceptanceService, user_context) -> None:
        """Test that admission stands when setting main fails."""
        service.profiles.ensure_main_organization.side_effect = RuntimeError("db down")

        result = await service.accept_invitation("tok", None, user_context)

        assert result["status"] == "accepted"

    @pytest.mark.asyncio
    async def test_profile_failure_stops_acceptance(self, service: AcceptanceService) -> None:
        """Test that a new account without a profile is not admitted."""
        service.profiles.create_profile.side_effect = DependencyFailureError("accounts.profile_failed")

        with pytest.raises(DependencyFailureError):
            await service.accept_invitation("tok", accept_body())

        service.admission.admit_with_retry.assert_not_awaited()


class TestCheckInvitationEmail:
    """Tests for check_invitation_email method."""

    @pytest.mark.asyncio
    async def test_anonymous_caller(self, service: AcceptanceService) -> None:
        """Test the state reported to a visitor without a session."""
        service.auth.user_exists.return_value = USER_ID
        service.organizations.is_member.return_value = True

        result = await service.check_invitation_email("tok", None)

        assert result == {
            "email": "alice@example.com",
            "user_exists": True,
            "is_logged_in": False,
            "email_matches": False,
            "user_id": None,
            "is_already_member": True,
        }

    @pytest.mark.asyncio
    async def test_matching_session(self, service: AcceptanceService, user_context) -> None:
        """Test that a matching session reports the user."""
        result = await service.check_invitation_email("tok", user_context)

        assert result["email_matches"] is True
        assert result["user_id"] == user_context.user_id
        assert result["user_exists"] is False
        service.organizations.is_member.assert_not_awaited()


class TestAcceptGeneralLink:
    """Tests for accept_general_link method."""

    @pytest.mark.asyncio
    async def test_without_approval_admits_immediately(self, service: AcceptanceService) -> None:
        """Test that open links admit right away and set main."""
        result = await service.accept_general_link("link-tok", link_body())

        assert result["status"] == "accepted"
        assert result["requires_approval"] is False
        assert result["is_new_user"] is True
        service.invitations.spawn_from_link.assert_awaited_once_with(
            "link-tok", "alice@example.com", "Alice", "Silva", NEW_USER_ID
        )
        service.admission.admit_with_retry.assert_awaited_once()
        service.profiles.ensure_main_organization.assert_awaited_once_with(NEW_USER_ID, UUID(ORG_ID))

    @pytest.mark.asyncio
    async def test_with_approval_leaves_request_pending(self, service: AcceptanceService) -> None:
        """Test that approval links stop at pending_approval."""
        service.links.require_active_link.return_value = link(requires_approval=True)
        service.invitations.spawn_from_link.return_value = {
            "id": INVITATION_ID,
            "token": "spawned",
            "organization_id": ORG_ID,
            "status": "pending_approval",
        }

        result = await service.accept_general_link("link-tok", link_body())

        assert result["status"] == "pending_approval"
        service.admission.admit_with_retry.assert_not_awaited()
        service.profiles.ensure_main_organization.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_link_creates_no_account(self, service: AcceptanceService) -> None:
        """Test that an expired link fails before account work."""
        service.links.require_active_link.side_effect = ExpiredError("invite_links.expired", data={"is_expired": True})

        with pytest.raises(ExpiredError):
            await service.accept_general_link("link-tok", link_body())

        service.auth.sign_up.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_open_request_is_conflict(self, service: AcceptanceService) -> None:
        """Test that a second request for the same email is 409."""
        service.invitations.find_open_invitation.return_value = {"id": "x", "status": "pending_approval"}

        with pytest.raises(ConflictError) as exc_info:
            await service.accept_general_link("link-tok", link_body())

        assert exc_info.value.message == "invite_links.already_requested"
        service.invitations.spawn_from_link.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_existing_member_is_conflict(self, service: AcceptanceService) -> None:
        """Test that members cannot join twice."""
        service.organizations.is_member.return_value = True

        with pytest.raises(ConflictError) as exc_info:
            await service.accept_general_link("link-tok", link_body())

        assert exc_info.value.message == "invitations.already_member"

    @pytest.mark.asyncio
    async def test_auto_admission_failure_is_swallowed(self, service: AcceptanceService, caplog) -> None:
        """Test that a failed automatic admission still returns the request."""
        service.admission.admit_with_retry.side_effect = ConflictError("invitations.already_member")

        with caplog.at_level("ERROR", logger="src.services.acceptance_service"):
            result = await service.accept_general_link("link-tok", link_body())

        assert result["status"] == "pending"
        assert result["invitation_id"] == INVITATION_ID
        record = next(r for r in caplog.records if r.levelname == "ERROR")
        assert record.invitation_id == INVITATION_ID
        assert record.error_code == "conflict"

    @pytest.mark.asyncio
    async def test_failed_purge_during_auto_admission_is_swallowed(
        self, service: AcceptanceService, fake_supabase, query, make_storage_error, caplog
    ) -> None:
        """Test that a storage failure while clearing stale rows keeps the request."""
        service.invitations.spawn_from_link.return_value = {
            "id": INVITATION_ID,
            "token": "spawned",
            "organization_id": ORG_ID,
            "email": "alice@example.com",
            "status": "pending",
        }
        service.admission = AdmissionService()
        service.admission.admit = AsyncMock(side_effect=ConflictError("invitations.already_member"))
        fake_supabase.tables["organization_member_overview"] = query([])
        fake_supabase.tables["organization_invitations"] = query(make_storage_error("XX000"))

        with caplog.at_level("ERROR", logger="src.services.acceptance_service"):
            result = await service.accept_general_link("link-tok", link_body())

        assert result["status"] == "pending"
        record = next(r for r in caplog.records if r.name == "src.services.acceptance_service")
        assert record.error_code == "dependency_failure"
        service.admission.admit.assert_awaited_once()
        assert fake_supabase.tables["organization_invitations"].called("delete")

    @pytest.mark.asyncio
    async def test_unexpected_auto_admission_error_is_swallowed(self, service: AcceptanceService, caplog) -> None:
        """Test that transport errors during admission keep the request."""
        service.admission.admit_with_retry.side_effect = RuntimeError("connection reset")

        with caplog.at_level("ERROR", logger="src.services.acceptance_service"):
            result = await service.accept_general_link("link-tok", link_body())

        assert result["status"] == "pending"
        record = next(r for r in caplog.records if r.levelname == "ERROR")
        assert record.user_id == str(NEW_USER_ID)
        assert record.error_code == "dependency_failure"

    @pytest.mark.asyncio
    async def test_matching_session_skips_sign_in(self, service: AcceptanceService, user_context) -> None:
        """Test that a session for the submitted email is used directly."""
        result = await service.accept_general_link("link-tok", link_body(), user_context)

        assert result["user_id"] == user_context.user_id
        assert result["session"] is None
        service.auth.user_exists.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_submitted_email_is_lowercased(self, service: AcceptanceService) -> None:
        """Test that the stored email is lowercased."""
        result = await service.accept_general_link("link-tok", link_body(email="Alice@Example.COM"))

        assert result["email"] == "alice@example.com"


class TestAcceptGeneralLinkLoggedIn:
    """Tests for accept_general_link_logged_in method."""

    @pytest.mark.asyncio
    async def test_uses_profile_names(self, service: AcceptanceService, user_context) -> None:
        """Test that names come from the caller's profile."""
        result = await service.accept_general_link_logged_in("link-tok", user_context)

        assert result["is_new_user"] is False
        service.invitations.spawn_from_link.assert_awaited_once_with(
            "link-tok", "alice@example.com", "Alice", "Silva", user_context.user_id
        )

    @pytest.mark.asyncio
    async def test_incomplete_profile(self, service: AcceptanceService, user_context) -> None:
        """Test that a profile without names is refused."""
        service.profiles.get_profile.return_value = {"first_name": "Alice", "last_name": None}

        with pytest.raises(ValidationError) as exc_info:
            await service.accept_general_link_logged_in("link-tok", user_context)

        assert exc_info.value.message == "invite_links.profile_incomplete"


class TestCheckGeneralLinkStatus:
    """Tests for check_general_link_status method."""

    @pytest.mark.asyncio
    async def test_anonymous(self, service: AcceptanceService) -> None:
        """Test that visitors only get the link flags."""
        result = await service.check_general_link_status("link-tok", None)

        assert result["is_logged_in"] is False
        assert result["has_pending_request"] is False
        service.organizations.is_member.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reports_pending_request(self, service: AcceptanceService, user_context) -> None:
        """Test that an open request is reported with its status."""
        service.invitations.find_open_invitation.return_value = {"id": "x", "status": "pending_approval"}

        result = await service.check_general_link_status("link-tok", user_context)

        assert result["has_pending_request"] is True
        assert result["pending_status"] == "pending_approval"
        assert result["email"] == "alice@example.com"
