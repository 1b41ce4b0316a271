"""FastAPI dependency injection functions."""

import logging
from typing import Annotated

from fastapi import Depends, Header, Request

from src.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from src.api.middleware.error_handler import AuthenticationError, RateLimitError
from src.core.config import get_settings
from src.core.i18n import negotiate_locale
from src.core.rate_limiter import get_rate_limiter
from src.schemas.auth import UserContext

logger = logging.getLogger(__name__)


def _bearer_token(authorization: str) -> str:
    """Extract the token from a ``Bearer <token>`` header value."""
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError(details=[{"msg": "Expected: Bearer <token>", "type": "invalid_header"}])
    return parts[1]


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context, carrying the raw token.

    Raises:
        AuthenticationError: 401 if token is missing, invalid, or expired.
    """
    if not authorization:
        raise AuthenticationError()

    token = _bearer_token(authorization)

    try:
        payload = decode_jwt(token)
    except AuthError as e:
        logger.info("Rejected bearer token: %s", e.code.value)
        error_type = "token_expired" if e.code == AuthErrorCode.TOKEN_EXPIRED else "invalid_token"
        raise AuthenticationError(details=[{"msg": e.message, "type": error_type}]) from e

    return payload.to_user_context(access_token=token)


async def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> UserContext | None:
    """Extract the current user if an Authorization header is present.

    A present but invalid token is still an error; only a missing header
    yields ``None``.

    Args:
        authorization: Optional Authorization header value.

    Returns:
        UserContext | None: The user context if authenticated, None otherwise.
    """
    if not authorization:
        return None
    return await get_current_user(authorization)


async def get_locale(request: Request) -> str:
    """Negotiate the response locale for the current request."""
    return negotiate_locale(request.headers)


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
OptionalUser = Annotated[UserContext | None, Depends(get_optional_user)]
Locale = Annotated[str, Depends(get_locale)]


async def check_public_rate_limit(request: Request, user: OptionalUser) -> None:
    """Rate limit the public token endpoints.

    Signed-in callers are keyed by user id with the higher limit; everyone
    else is keyed by client address.

    Raises:
        RateLimitError: If the caller has exceeded the limit.
    """
    settings = get_settings()
    limiter = get_rate_limiter()

    if user:
        key = f"user:{user.user_id}"
        max_requests = settings.rate_limit_authenticated_requests
    else:
        host = request.client.host if request.client else "unknown"
        key = f"ip:{host}"
        max_requests = settings.rate_limit_anonymous_requests

    allowed, _, retry_after = await limiter.check_and_increment(
        key,
        max_requests=max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    if not allowed:
        raise RateLimitError(retry_after=retry_after)


PublicRateLimit = Annotated[None, Depends(check_public_rate_limit)]
