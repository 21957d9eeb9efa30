"""API error taxonomy.

Every failure a handler can report is one of these. The dispatcher renders
them with ``common.response.error``; anything else becomes a 500.
"""

from common.response import error


class ApiError(Exception):
    """Base error with an HTTP status and a user-safe message."""

    status = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, **extra) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.status}: {self.message}"

    def response(self) -> dict:
        return error(self.message, self.status, **self.extra)


class BadInput(ApiError):
    """Missing or malformed request field."""

    status = 400
    default_message = "Bad request"


class Unauthenticated(ApiError):
    """No credential, or the credential did not resolve to an identity."""

    status = 401
    default_message = "Unauthorized"


class Unauthorized(ApiError):
    """Identity resolved, but the authorization chain denied the operation."""

    status = 401
    default_message = "Unauthorized"


class AccessDenied(ApiError):
    """The store itself rejected the call (IAM policy), surfaced with a hint."""

    status = 403
    default_message = "Access denied by the data store"


class NotFound(ApiError):
    status = 404
    default_message = "Resource not found"


class RouteUnmatched(ApiError):
    status = 405
    default_message = "Method not allowed"


class Conflict(ApiError):
    """Uniqueness violation, or deletion blocked by dependent rows."""

    status = 409
    default_message = "Conflict"


class StoreFailure(ApiError):
    status = 500
    default_message = "Internal server error"
