"""Opaque invitation token generation."""

import secrets

from src.core.config import get_settings


def generate_token(nbytes: int | None = None) -> str:
    """Generate a URL-safe random token for invitations and invite links.

    The token is an opaque identifier: it carries no expiry or state, and
    can be used as a path segment without escaping.

    Args:
        nbytes: Number of random bytes. Defaults to the configured size (32).

    Returns:
        str: Base64url-encoded token without padding.
    """
    if nbytes is None:
        nbytes = get_settings().invitation_token_bytes
    return secrets.token_urlsafe(nbytes)
