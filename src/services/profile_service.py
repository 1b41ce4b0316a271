"""Profile business logic service, including main-organization selection."""

import logging
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError as StorageError

from src.api.middleware.error_handler import AuthorizationError, DependencyFailureError, NotFoundError
from src.core.supabase import get_supabase_client

logger = logging.getLogger(__name__)


class ProfileService:
    """Service for managing user profiles and their main organization.

    The main organization is only a navigation default. It never grants or
    limits access; membership is always checked on its own.
    """

    def __init__(self) -> None:
        """Initialize profile service with Supabase client."""
        self.client = get_supabase_client()

    async def get_profile(self, user_id: UUID) -> dict[str, Any] | None:
        """Get a profile by user ID.

        Args:
            user_id: The auth user ID.

        Returns:
            dict | None: The profile data or None if not found.
        """
        response = (
            self.client.table("profiles")
            .select("*")
            .eq("id", str(user_id))
            .maybe_single()
            .execute()
        )

        return response.data if response and response.data else None

    async def require_profile(self, user_id: UUID) -> dict[str, Any]:
        """Get a profile or raise NotFoundError."""
        profile = await self.get_profile(user_id)
        if not profile:
            raise NotFoundError("profiles.not_found")
        return profile

    async def create_profile(
        self,
        user_id: UUID,
        first_name: str | None,
        last_name: str | None,
        date_of_birth: str | None = None,
    ) -> dict[str, Any]:
        """Create the profile for a new account.

        Existing values are kept, so calling this for an account that already
        has a profile only fills in what is missing.

        Args:
            user_id: The auth user ID.
            first_name: First name.
            last_name: Last name.
            date_of_birth: Date of birth as YYYY-MM-DD.

        Returns:
            dict: The profile row.

        Raises:
            DependencyFailureError: If the profile could not be written.
        """
        try:
            response = self.client.rpc(
                "create_user_profile",
                {
                    "p_user_id": str(user_id),
                    "p_first_name": first_name,
                    "p_last_name": last_name,
                    "p_date_of_birth": date_of_birth,
                },
            ).execute()
        except StorageError as e:
            logger.error("Profile creation failed for %s: %s", user_id, e.message)
            raise DependencyFailureError("accounts.profile_failed") from e

        return response.data[0] if isinstance(response.data, list) else response.data

    async def _is_member(self, user_id: UUID, organization_id: UUID | str) -> bool:
        response = (
            self.client.table("organization_members")
            .select("id")
            .eq("user_id", str(user_id))
            .eq("organization_id", str(organization_id))
            .execute()
        )
        return bool(response.data)

    async def _set_main_organization(self, user_id: UUID, organization_id: UUID | None) -> None:
        (
            self.client.table("profiles")
            .update({"main_organization_id": str(organization_id) if organization_id else None})
            .eq("id", str(user_id))
            .execute()
        )

    async def ensure_main_organization(self, user_id: UUID, organization_id: UUID) -> bool:
        """Make an organization the user's main one when they lack a valid main.

        The pointer is set when it is empty, or when it names an organization
        the user no longer belongs to. A valid existing main is left alone.

        Args:
            user_id: The auth user ID.
            organization_id: The organization the user just joined.

        Returns:
            bool: True if the pointer was changed.
        """
        profile = await self.get_profile(user_id)
        if not profile:
            # An earlier sign-up can leave an account without a profile row.
            logger.warning("No profile for %s, creating one before setting main organization", user_id)
            profile = await self.create_profile(user_id, None, None) or {}

        current = profile.get("main_organization_id")
        if current and str(current) != str(organization_id) and await self._is_member(user_id, current):
            return False
        if current and str(current) == str(organization_id):
            return False

        await self._set_main_organization(user_id, organization_id)
        logger.info("Main organization for %s set to %s", user_id, organization_id)
        return True

    async def update_main_organization(self, user_id: UUID, organization_id: UUID | None) -> dict[str, Any]:
        """Set or clear the user's main organization.

        Args:
            user_id: The auth user ID.
            organization_id: Organization to make main, or None to clear.

        Returns:
            dict: ``main_organization_id`` and ``organization_name``.

        Raises:
            AuthorizationError: If the user is not a member of the organization.
        """
        await self.require_profile(user_id)

        if organization_id is None:
            await self._set_main_organization(user_id, None)
            return {"main_organization_id": None, "organization_name": None}

        if not await self._is_member(user_id, organization_id):
            raise AuthorizationError("organizations.not_member")

        await self._set_main_organization(user_id, organization_id)
        return {
            "main_organization_id": organization_id,
            "organization_name": await self._organization_name(organization_id),
        }

    async def get_main_organization(self, user_id: UUID) -> dict[str, Any]:
        """Get the user's main organization.

        A pointer to an organization the user has left is cleared on read.

        Args:
            user_id: The auth user ID.

        Returns:
            dict: ``main_organization_id`` and ``organization_name``, both None if unset.
        """
        profile = await self.require_profile(user_id)
        current = profile.get("main_organization_id")

        if not current:
            return {"main_organization_id": None, "organization_name": None}

        if not await self._is_member(user_id, current):
            logger.info("Clearing stale main organization %s for %s", current, user_id)
            await self._set_main_organization(user_id, None)
            return {"main_organization_id": None, "organization_name": None}

        return {
            "main_organization_id": current,
            "organization_name": await self._organization_name(current),
        }

    async def recalculate_main_organization(
        self,
        user_id: UUID,
        removed_organization_id: UUID | None = None,
    ) -> UUID | None:
        """Pick a new main organization after the user lost a membership.

        Nothing changes unless the main organization is empty or was the one
        removed. The earliest remaining membership wins; with none left the
        pointer is cleared.

        Args:
            user_id: The auth user ID.
            removed_organization_id: The organization the user was removed from.

        Returns:
            UUID | None: The main organization after recalculation.
        """
        profile = await self.get_profile(user_id)
        if not profile:
            return None

        current = profile.get("main_organization_id")
        if current and (removed_organization_id is None or str(current) != str(removed_organization_id)):
            if await self._is_member(user_id, current):
                return UUID(str(current))

        response = (
            self.client.table("organization_members")
            .select("organization_id")
            .eq("user_id", str(user_id))
            .order("joined_at")
            .limit(1)
            .execute()
        )

        new_main = UUID(str(response.data[0]["organization_id"])) if response.data else None
        await self._set_main_organization(user_id, new_main)
        logger.info("Main organization for %s recalculated to %s", user_id, new_main)
        return new_main

    async def _organization_name(self, organization_id: UUID | str) -> str | None:
        response = (
            self.client.table("organizations")
            .select("name")
            .eq("id", str(organization_id))
            .execute()
        )
        return response.data[0]["name"] if response.data else None
