"""Unit tests for ProfileService."""

from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest

from src.api.middleware.error_handler import AuthorizationError, DependencyFailureError, NotFoundError
from src.services.profile_service import ProfileService

USER_ID = UUID("550e8400-e29b-41d4-a716-446655440000")
ORG_ID = UUID("770e8400-e29b-41d4-a716-446655440000")
OTHER_ORG_ID = UUID("990e8400-e29b-41d4-a716-446655440000")


def profile(main_organization_id: UUID | None = None) -> dict:
    return {
        "id": str(USER_ID),
        "first_name": "Alice",
        "last_name": "Silva",
        "main_organization_id": str(main_organization_id) if main_organization_id else None,
    }


@pytest.fixture
def mock_supabase() -> MagicMock:
    """Create a mock Supabase client."""
    return MagicMock()


@pytest.fixture
def profile_service(mock_supabase: MagicMock) -> ProfileService:
    """Create ProfileService with mocked client."""
    with patch("src.services.profile_service.get_supabase_client", return_value=mock_supabase):
        return ProfileService()


class TestGetProfile:
    """Tests for get_profile and require_profile."""

    @pytest.mark.asyncio
    async def test_returns_profile(self, profile_service: ProfileService, mock_supabase: MagicMock) -> None:
        """Test that the profile row is returned."""
        mock_response = MagicMock()
        mock_response.data = profile()
        mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
            mock_response
        )

        result = await profile_service.get_profile(USER_ID)

        assert result["first_name"] == "Alice"
        mock_supabase.table.assert_called_with("profiles")

    @pytest.mark.asyncio
    async def test_require_profile_raises_when_missing(
        self, profile_service: ProfileService, mock_supabase: MagicMock
    ) -> None:
        """Test that a missing profile raises NotFoundError."""
        mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
            None
        )

        with pytest.raises(NotFoundError) as exc_info:
            await profile_service.require_profile(USER_ID)

        assert exc_info.value.message == "profiles.not_found"


class TestCreateProfile:
    """Tests for create_profile method."""

    @pytest.mark.asyncio
    async def test_calls_profile_function(self, profile_service: ProfileService, mock_supabase: MagicMock) -> None:
        """Test that names and date of birth are passed to the database."""
        mock_response = MagicMock()
        mock_response.data = [profile()]
        mock_supabase.rpc.return_value.execute.return_value = mock_response

        result = await profile_service.create_profile(USER_ID, "Alice", "Silva", "1990-05-01")

        assert result["id"] == str(USER_ID)
        name, params = mock_supabase.rpc.call_args[0]
        assert name == "create_user_profile"
        assert params["p_date_of_birth"] == "1990-05-01"

    @pytest.mark.asyncio
    async def test_storage_failure_is_dependency_failure(
        self, profile_service: ProfileService, mock_supabase: MagicMock, make_storage_error
    ) -> None:
        """Test that a failed write raises DependencyFailureError."""
        mock_supabase.rpc.return_value.execute.side_effect = make_storage_error("XX000")

        with pytest.raises(DependencyFailureError) as exc_info:
            await profile_service.create_profile(USER_ID, "Alice", "Silva")

        assert exc_info.value.message == "accounts.profile_failed"


class TestEnsureMainOrganization:
    """Tests for ensure_main_organization method."""

    @pytest.mark.asyncio
    async def test_sets_when_empty(self, fake_supabase, query) -> None:
        """Test that an empty main organization is filled in."""
        profiles = query(profile(), [profile(ORG_ID)])
        fake_supabase.tables["profiles"] = profiles

        changed = await ProfileService().ensure_main_organization(USER_ID, ORG_ID)

        assert changed is True
        assert profiles.called("update") == [(({"main_organization_id": str(ORG_ID)},), {})]

    @pytest.mark.asyncio
    async def test_keeps_valid_existing_main(self, fake_supabase, query) -> None:
        """Test that a main organization the user still belongs to is kept."""
        profiles = query(profile(OTHER_ORG_ID))
        fake_supabase.tables["profiles"] = profiles
        fake_supabase.tables["organization_members"] = query([{"id": "m1"}])

        changed = await ProfileService().ensure_main_organization(USER_ID, ORG_ID)

        assert changed is False
        assert not profiles.called("update")

    @pytest.mark.asyncio
    async def test_replaces_stale_main(self, fake_supabase, query) -> None:
        """Test that a main organization the user left is replaced."""
        profiles = query(profile(OTHER_ORG_ID), [profile(ORG_ID)])
        fake_supabase.tables["profiles"] = profiles
        fake_supabase.tables["organization_members"] = query([])

        changed = await ProfileService().ensure_main_organization(USER_ID, ORG_ID)

        assert changed is True
        assert profiles.called("update") == [(({"main_organization_id": str(ORG_ID)},), {})]

    @pytest.mark.asyncio
    async def test_missing_profile_is_created_then_set(self, fake_supabase, query) -> None:
        """Test that an account without a profile row still gets its main organization."""
        profiles = query(None)
        fake_supabase.tables["profiles"] = profiles
        fake_supabase.rpcs["create_user_profile"] = query([{"id": str(USER_ID), "main_organization_id": None}])

        changed = await ProfileService().ensure_main_organization(USER_ID, ORG_ID)

        assert changed is True
        assert fake_supabase.rpc_params("create_user_profile") == {
            "p_user_id": str(USER_ID),
            "p_first_name": None,
            "p_last_name": None,
            "p_date_of_birth": None,
        }
        assert profiles.called("update") == [(({"main_organization_id": str(ORG_ID)},), {})]


class TestUpdateMainOrganization:
    """Tests for update_main_organization method."""

    @pytest.mark.asyncio
    async def test_sets_organization_for_member(self, fake_supabase, query) -> None:
        """Test that a member can choose the organization."""
        fake_supabase.tables["profiles"] = query(profile(), [profile(ORG_ID)])
        fake_supabase.tables["organization_members"] = query([{"id": "m1"}])
        fake_supabase.tables["organizations"] = query([{"name": "Torre Norte"}])

        result = await ProfileService().update_main_organization(USER_ID, ORG_ID)

        assert result == {"main_organization_id": ORG_ID, "organization_name": "Torre Norte"}

    @pytest.mark.asyncio
    async def test_rejects_non_member(self, fake_supabase, query) -> None:
        """Test that an organization the user does not belong to is refused."""
        fake_supabase.tables["profiles"] = query(profile())
        fake_supabase.tables["organization_members"] = query([])

        with pytest.raises(AuthorizationError) as exc_info:
            await ProfileService().update_main_organization(USER_ID, ORG_ID)

        assert exc_info.value.message == "organizations.not_member"

    @pytest.mark.asyncio
    async def test_clears_with_none(self, fake_supabase, query) -> None:
        """Test that None clears the main organization."""
        profiles = query(profile(ORG_ID), [profile()])
        fake_supabase.tables["profiles"] = profiles

        result = await ProfileService().update_main_organization(USER_ID, None)

        assert result == {"main_organization_id": None, "organization_name": None}
        assert profiles.called("update") == [(({"main_organization_id": None},), {})]


class TestGetMainOrganization:
    """Tests for get_main_organization method."""

    @pytest.mark.asyncio
    async def test_returns_current_main(self, fake_supabase, query) -> None:
        """Test that a valid main organization is returned with its name."""
        fake_supabase.tables["profiles"] = query(profile(ORG_ID))
        fake_supabase.tables["organization_members"] = query([{"id": "m1"}])
        fake_supabase.tables["organizations"] = query([{"name": "Torre Norte"}])

        result = await ProfileService().get_main_organization(USER_ID)

        assert result == {"main_organization_id": str(ORG_ID), "organization_name": "Torre Norte"}

    @pytest.mark.asyncio
    async def test_clears_stale_pointer_on_read(self, fake_supabase, query) -> None:
        """Test that a main organization the user left is cleared."""
        profiles = query(profile(ORG_ID), [profile()])
        fake_supabase.tables["profiles"] = profiles
        fake_supabase.tables["organization_members"] = query([])

        result = await ProfileService().get_main_organization(USER_ID)

        assert result == {"main_organization_id": None, "organization_name": None}
        assert profiles.called("update")


class TestRecalculateMainOrganization:
    """Tests for recalculate_main_organization method."""

    @pytest.mark.asyncio
    async def test_picks_earliest_remaining_membership(self, fake_supabase, query) -> None:
        """Test that the oldest remaining membership becomes main."""
        profiles = query(profile(ORG_ID), [profile(OTHER_ORG_ID)])
        members = query([{"organization_id": str(OTHER_ORG_ID)}])
        fake_supabase.tables["profiles"] = profiles
        fake_supabase.tables["organization_members"] = members

        result = await ProfileService().recalculate_main_organization(USER_ID, removed_organization_id=ORG_ID)

        assert result == OTHER_ORG_ID
        assert (("joined_at",), {}) in members.called("order")

    @pytest.mark.asyncio
    async def test_clears_when_no_memberships_left(self, fake_supabase, query) -> None:
        """Test that the pointer is cleared when nothing remains."""
        profiles = query(profile(ORG_ID), [profile()])
        fake_supabase.tables["profiles"] = profiles
        fake_supabase.tables["organization_members"] = query([])

        result = await ProfileService().recalculate_main_organization(USER_ID, removed_organization_id=ORG_ID)

        assert result is None
        assert profiles.called("update") == [(({"main_organization_id": None},), {})]

    @pytest.mark.asyncio
    async def test_keeps_unrelated_main(self, fake_supabase, query) -> None:
        """Test that removal from another organization leaves main alone."""
        profiles = query(profile(OTHER_ORG_ID))
        fake_supabase.tables["profiles"] = profiles
        fake_supabase.tables["organization_members"] = query([{"id": "m1"}])

        result = await ProfileService().recalculate_main_organization(USER_ID, removed_organization_id=ORG_ID)

        assert result == OTHER_ORG_ID
        assert not profiles.called("update")
