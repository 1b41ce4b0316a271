"""Account registry service backed by Supabase Auth."""

import logging
from typing import Any
from uuid import UUID

from postgrest.exceptions import APIError as StorageError

from src.api.middleware.error_handler import ConflictError, DependencyFailureError, ValidationError
from src.core.supabase import create_auth_client, get_supabase_client
from src.schemas.auth import SessionTokens

logger = logging.getLogger(__name__)


def _session_tokens(session: Any) -> SessionTokens | None:
    if not session or not getattr(session, "access_token", None):
        return None
    return SessionTokens(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=session.expires_in or 3600,
    )


class AuthService:
    """Service for looking up, creating and signing in accounts."""

    def __init__(self) -> None:
        """Initialize auth service with isolated Supabase client.

        Uses create_auth_client() instead of get_supabase_client() for sign
        up and sign in so the singleton client's Authorization header is
        never replaced by a user session.
        """
        self.client = create_auth_client()

    async def user_exists(self, email: str) -> UUID | None:
        """Look up an account by email.

        Args:
            email: Email address, compared case-insensitively.

        Returns:
            UUID | None: The account's user ID, or None if no account exists.

        Raises:
            DependencyFailureError: If the lookup fails.
        """
        try:
            response = get_supabase_client().rpc("check_user_exists_by_email", {"p_email": email}).execute()
        except StorageError as e:
            logger.error("Account lookup failed: %s", e.message)
            raise DependencyFailureError() from e

        return UUID(str(response.data)) if response.data else None

    async def sign_up(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> dict[str, Any]:
        """Create a new account with email and password.

        Args:
            email: Account email.
            password: Account password.
            first_name: First name stored in the user metadata.
            last_name: Last name stored in the user metadata.

        Returns:
            dict: ``user_id``, ``email`` and ``session`` (None when the
                project requires email confirmation first).

        Raises:
            ConflictError: If the email is already registered.
            ValidationError: If Supabase rejects the sign up.
        """
        try:
            response = self.client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": {"first_name": first_name, "last_name": last_name}},
                }
            )
        except Exception as e:
            error_msg = str(e)
            if "already registered" in error_msg.lower() or "already exists" in error_msg.lower():
                raise ConflictError("accounts.email_registered") from e

            logger.error("Signup failed: %s", error_msg)
            raise ValidationError("accounts.signup_failed") from e

        if not response.user:
            raise ValidationError("accounts.signup_failed")

        logger.info("User signed up: %s", response.user.id)
        return {
            "user_id": UUID(str(response.user.id)),
            "email": response.user.email or email,
            "session": _session_tokens(response.session),
        }

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        """Sign in an existing account with email and password.

        Args:
            email: Account email.
            password: Account password.

        Returns:
            dict: ``user_id``, ``email`` and ``session``.

        Raises:
            ValidationError: If the credentials are rejected. The message tells
                the user the email is registered and to check the password.
        """
        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            logger.info("Sign in rejected for existing account: %s", str(e))
            raise ValidationError("accounts.email_registered") from e

        if not response.user:
            raise ValidationError("accounts.email_registered")

        logger.info("User signed in: %s", response.user.id)
        return {
            "user_id": UUID(str(response.user.id)),
            "email": response.user.email or email,
            "session": _session_tokens(response.session),
        }
