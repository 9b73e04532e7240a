"""Models package exports."""

from account_api.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResult,
    RefreshRequest,
    RegistrationFields,
    TokenPair,
    UpdateAccountRequest,
)
from account_api.models.media import ProfileMedia, UploadedAsset
from account_api.models.response import ApiResponse, ErrorResponse
from account_api.models.user import User, UserRecord

__all__ = [
    "ApiResponse",
    "ChangePasswordRequest",
    "ErrorResponse",
    "LoginRequest",
    "LoginResult",
    "ProfileMedia",
    "RefreshRequest",
    "RegistrationFields",
    "TokenPair",
    "UpdateAccountRequest",
    "UploadedAsset",
    "User",
    "UserRecord",
]
