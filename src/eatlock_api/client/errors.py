"""Client-side error taxonomy.

Every failure the pipeline surfaces is a ``VisionError``. Only upstream
failures and timeouts are ``retryable``; the UI offers a retry button for
those and a terminal message for everything else.
"""

from typing import Any

import httpx

from eatlock_api.utils.dates import format_duration


class VisionError(Exception):
    """Base class for pipeline failures."""

    retryable = False

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ClientError(VisionError):
    """The request itself was rejected. Never retried automatically."""


class BadRequest(ClientError):
    pass


class Unauthorized(ClientError):
    pass


class Forbidden(ClientError):
    pass


class TooLarge(ClientError):
    pass


class UnsupportedMediaType(ClientError):
    pass


class RateLimited(VisionError):
    """Quota, burst or cooldown rejection (429)."""


class NotFound(VisionError):
    """Referenced image expired or was never uploaded; the user must recapture."""


class UpstreamError(VisionError):
    """Model provider failed or answered with something unusable."""

    retryable = True


class UpstreamUnavailable(UpstreamError):
    """Backend unreachable or temporarily unavailable."""


class RequestTimeout(VisionError):
    """Request did not complete within the client timeout."""

    retryable = True


# =============================================================================
# Session errors
# =============================================================================


class SessionError(Exception):
    """Base class for session lifecycle violations."""


class SessionAlreadyActiveError(SessionError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is already active")


class NoActiveSessionError(SessionError):
    def __init__(self):
        super().__init__("No active meal session")


class MealTooShortError(SessionError):
    """The finish action was attempted before the minimum meal duration."""

    def __init__(self, remaining_seconds: float):
        self.remaining_seconds = remaining_seconds
        super().__init__(f"Keep eating! You can finish in {format_duration(remaining_seconds)}.")


class SessionStateError(SessionError):
    """A protected field or a terminal session was about to be changed."""


_STATUS_ERRORS: dict[int, type[VisionError]] = {
    400: BadRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    413: TooLarge,
    415: UnsupportedMediaType,
    429: RateLimited,
    502: UpstreamError,
    503: UpstreamUnavailable,
    504: UpstreamUnavailable,
}


def error_for_response(response: httpx.Response) -> VisionError:
    """Map a non-success backend response to the error taxonomy."""
    status = response.status_code
    message = f"Request failed ({status})"
    details = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("error") or message
        details = body.get("details")

    error_cls = _STATUS_ERRORS.get(status)
    if error_cls is None:
        error_cls = UpstreamError if status >= 500 else ClientError
    return error_cls(message, status_code=status, details=details)
