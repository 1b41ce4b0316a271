"""Global error handling: error taxonomy, envelope rendering and middleware."""

import logging
import time
import traceback
from typing import Any, Callable

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError as StorageError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.core.i18n import negotiate_locale, translate
from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors.

    ``message`` is a message key from the i18n catalogue (or literal text);
    it is translated to the caller's locale when the error is rendered.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type: str = "dependency_failure",
        details: list[dict[str, Any]] | None = None,
        data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Message key or human-readable message.
            status_code: HTTP status code to return.
            error_type: Stable taxonomy code for client handling.
            details: Optional field-level error details.
            data: Optional payload returned alongside the error.
            params: Values interpolated into the translated message.
        """
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.details = details
        self.data = data
        self.params = params or {}
        super().__init__(message)

    def localized_message(self, locale: str | None) -> str:
        """Render the message in the given locale."""
        return translate(self.message, locale, **self.params)


class AuthenticationError(APIError):
    """No valid session was presented."""

    def __init__(self, message: str = "errors.unauthenticated", **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, "unauthenticated", **kwargs)


class AuthorizationError(APIError):
    """The caller lacks the permission or identity the action needs."""

    def __init__(self, message: str = "errors.unauthorized", **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN, "unauthorized", **kwargs)


class NotFoundError(APIError):
    """Token, organization, role or record is absent."""

    def __init__(self, message: str = "errors.not_found", **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND, "not_found", **kwargs)


class ExpiredError(APIError):
    """The invitation or link is past its expiry."""

    def __init__(self, message: str = "errors.expired", **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_410_GONE, "expired", **kwargs)


class InvalidStateError(APIError):
    """The record's status does not allow the attempted transition.

    Public token flows report this as 410 (the token is spent); admin actions
    on a known record report 400.
    """

    def __init__(
        self,
        message: str = "errors.invalid_state",
        status_code: int = status.HTTP_410_GONE,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, status_code, "invalid_state", **kwargs)


class ConflictError(APIError):
    """A uniqueness rule was violated (duplicate invitation or membership)."""

    def __init__(self, message: str = "errors.conflict", **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT, "conflict", **kwargs)


class ValidationError(APIError):
    """Malformed or unacceptable input."""

    def __init__(self, message: str = "errors.validation", **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, "validation_failed", **kwargs)


class DependencyFailureError(APIError):
    """Email delivery or the storage layer failed for an unexpected reason."""

    def __init__(self, message: str = "errors.internal", **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR, "dependency_failure", **kwargs)


class RateLimitError(APIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str = "errors.rate_limited", retry_after: int = 60, **kwargs: Any) -> None:
        super().__init__(message, status.HTTP_429_TOO_MANY_REQUESTS, "rate_limited", **kwargs)
        self.retry_after = retry_after


# SQLSTATE codes raised by the database functions.
STORAGE_NOT_FOUND = "P0001"
STORAGE_EXPIRED = "P0002"
STORAGE_INVALID_STATE = "P0003"
STORAGE_UNIQUE_VIOLATION = "23505"


def from_storage_error(
    error: StorageError,
    *,
    not_found: str = "errors.not_found",
    expired: str = "errors.expired",
    invalid_state: str = "errors.invalid_state",
    conflict: str = "errors.conflict",
    fallback: str = "errors.internal",
    invalid_state_status: int = status.HTTP_410_GONE,
) -> APIError:
    """Translate a PostgREST error into the API error taxonomy.

    Args:
        error: The error raised by a table query or RPC call.
        not_found: Message key for P0001.
        expired: Message key for P0002.
        invalid_state: Message key for P0003.
        conflict: Message key for unique violations.
        fallback: Message key for anything else.
        invalid_state_status: HTTP status used for P0003.

    Returns:
        APIError: The matching taxonomy error. Callers raise it.
    """
    code = getattr(error, "code", None)
    if code == STORAGE_NOT_FOUND:
        return NotFoundError(not_found)
    if code == STORAGE_EXPIRED:
        return ExpiredError(expired)
    if code == STORAGE_INVALID_STATE:
        return InvalidStateError(invalid_state, status_code=invalid_state_status)
    if code == STORAGE_UNIQUE_VIOLATION:
        return ConflictError(conflict)

    logger.error("Storage error %s: %s", code, getattr(error, "message", str(error)))
    return DependencyFailureError(fallback)


_STATUS_ERROR_TYPES = {
    status.HTTP_400_BAD_REQUEST: "validation_failed",
    status.HTTP_401_UNAUTHORIZED: "unauthenticated",
    status.HTTP_403_FORBIDDEN: "unauthorized",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_409_CONFLICT: "conflict",
    status.HTTP_410_GONE: "expired",
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: "request_too_large",
    status.HTTP_429_TOO_MANY_REQUESTS: "rate_limited",
}


def create_error_response(
    error_type: str,
    message: str,
    status_code: int,
    details: list[dict[str, Any]] | None = None,
    data: Any = None,
    request_id: str | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response.

    Args:
        error_type: Taxonomy code for client handling.
        message: Localized error description.
        status_code: HTTP status code.
        details: Optional error details.
        data: Optional error payload.
        request_id: Optional request ID for tracing.

    Returns:
        JSONResponse: Formatted error response.
    """
    error_response = ErrorResponse.from_exception(
        error_type=error_type,
        message=message,
        details=details,
        data=data,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def render_api_error(request: Request, error: APIError) -> JSONResponse:
    """Render an APIError in the caller's locale."""
    locale = negotiate_locale(request.headers)
    response = create_error_response(
        error_type=error.error_type,
        message=error.localized_message(locale),
        status_code=error.status_code,
        details=error.details,
        data=error.data,
        request_id=request.headers.get("X-Request-ID"),
    )
    if isinstance(error, RateLimitError):
        response.headers["Retry-After"] = str(error.retry_after)
        response.headers["X-RateLimit-Remaining"] = "0"
        response.headers["X-RateLimit-Reset"] = str(int(time.time()) + error.retry_after)
    return response


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP exceptions (unknown routes, wrong methods) in the envelope."""
    error_type = _STATUS_ERROR_TYPES.get(exc.status_code, "http_error")
    locale = negotiate_locale(request.headers)
    message = translate(str(exc.detail), locale) if isinstance(exc.detail, str) else str(exc.detail)
    response = create_error_response(
        error_type=error_type,
        message=message,
        status_code=exc.status_code,
        request_id=request.headers.get("X-Request-ID"),
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as 400 ``validation_failed``."""
    locale = negotiate_locale(request.headers)
    details = [
        {
            "loc": [str(part) for part in err.get("loc", [])],
            "msg": err.get("msg", ""),
            "type": err.get("type", "value_error"),
        }
        for err in exc.errors()
    ]
    logger.info("Request validation failed on %s: %s", request.url.path, details)
    return create_error_response(
        error_type="validation_failed",
        message=translate("errors.validation", locale),
        status_code=status.HTTP_400_BAD_REQUEST,
        details=details,
        request_id=request.headers.get("X-Request-ID"),
    )


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Exception handler form of the APIError rendering."""
    logger.warning(
        "API error: %s - %s",
        exc.error_type,
        exc.message,
        extra={"status_code": exc.status_code, "path": request.url.path},
    )
    return render_api_error(request, exc)


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Middleware to catch and format all exceptions.

    Ensures consistent error response format across the application.
    Logs full stack traces for debugging while returning safe messages to clients.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or formatted error response.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        logger.warning(
            "API error: %s - %s",
            e.error_type,
            e.message,
            extra={"request_id": request_id, "status_code": e.status_code},
        )
        return render_api_error(request, e)

    except Exception as e:
        logger.error(
            "Unhandled exception: %s\n%s",
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            error_type="dependency_failure",
            message=translate("errors.internal", negotiate_locale(request.headers)),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_id=request_id,
        )
