"""Error taxonomy for the account API.

Every workflow failure is raised as an ``ApiError`` subclass. The exception
handlers in ``account_api.main`` turn them into the uniform error envelope.
"""

from typing import Any, List, Optional


class ApiError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = 500
    kind: str = "InternalError"
    default_message: str = "Something went wrong"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[List[Any]] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.message = message or self.default_message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ApiError):
    """A required field is missing or blank."""

    status_code = 400
    kind = "ValidationError"
    default_message = "All fields are required"


class ConflictError(ApiError):
    """A unique username/email constraint would be violated."""

    status_code = 409
    kind = "Conflict"
    default_message = "User with this username or email already exists"


class NotFoundError(ApiError):
    status_code = 404
    kind = "NotFound"
    default_message = "User does not exist"


class InvalidCredentialsError(ApiError):
    status_code = 401
    kind = "InvalidCredentials"
    default_message = "Invalid user credentials"


class UnauthorizedError(ApiError):
    """Missing, invalid or mismatched token."""

    status_code = 401
    kind = "Unauthorized"
    default_message = "Unauthorized request"


class UploadError(ApiError):
    status_code = 500
    kind = "UploadError"
    default_message = "Failed to upload file"


class InternalError(ApiError):
    status_code = 500
    kind = "InternalError"
    default_message = "Something went wrong"
