"""Services package exports."""

from account_api.services.auth_service import AuthService
from account_api.services.logging_service import configure_logging, get_logger
from account_api.services.media_service import MediaStore, MediaStoreError
from account_api.services.profile_service import ProfileService
from account_api.services.saga import Saga
from account_api.services.token_service import InvalidTokenError, TokenService
from account_api.services.user_service import UserService

__all__ = [
    "AuthService",
    "InvalidTokenError",
    "MediaStore",
    "MediaStoreError",
    "ProfileService",
    "Saga",
    "TokenService",
    "UserService",
    "configure_logging",
    "get_logger",
]
