"""Custom exception classes for the API."""

from typing import Any


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int = 400, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class BadRequestError(APIError):
    """Malformed or invalid request."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=400, details=details)


class AuthenticationError(APIError):
    """Missing, malformed or rejected bearer token."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message=message, status_code=401)


class ForbiddenError(APIError):
    """Caller is authenticated but may not touch the resource."""

    def __init__(self, message: str = "Forbidden", details: Any = None):
        super().__init__(message=message, status_code=403, details=details)


class NotFoundError(APIError):
    """Resource not found."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=404, details=details)


class PayloadTooLargeError(APIError):
    """Uploaded or stored object exceeds the size cap."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=413, details=details)


class UnsupportedMediaTypeError(APIError):
    """Object is not of the expected image type."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=415, details=details)


class RateLimitedError(APIError):
    """Admission control rejected the request."""

    def __init__(self, message: str, remaining: int | None = None):
        super().__init__(
            message=message,
            status_code=429,
            details={"remaining": remaining} if remaining is not None else None,
        )
        self.remaining = remaining


class UpstreamError(APIError):
    """The model provider failed or returned an unusable response."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=502, details=details)
