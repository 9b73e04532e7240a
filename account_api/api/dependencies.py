"""FastAPI dependencies: service wiring and the authentication gate."""

from typing import AsyncGenerator, Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from account_api.config import Settings, get_settings
from account_api.errors import UnauthorizedError
from account_api.models.user import User
from account_api.services.auth_service import AuthService
from account_api.services.media_service import MediaStore
from account_api.services.profile_service import ProfileService
from account_api.services.token_service import InvalidTokenError, TokenService
from account_api.services.user_service import UserService

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

bearer_scheme = HTTPBearer(auto_error=False)


def get_user_service() -> UserService:
    return UserService()


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService(settings)


async def get_media_store(
    settings: Settings = Depends(get_settings),
) -> AsyncGenerator[MediaStore, None]:
    """Yield a media store whose HTTP client is closed after the request."""
    store = MediaStore(settings)
    try:
        yield store
    finally:
        await store.close()


def get_auth_service(
    user_service: UserService = Depends(get_user_service),
    token_service: TokenService = Depends(get_token_service),
) -> AuthService:
    return AuthService(user_service, token_service)


def get_profile_service(
    user_service: UserService = Depends(get_user_service),
    media_store: MediaStore = Depends(get_media_store),
) -> ProfileService:
    return ProfileService(user_service, media_store)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    token_service: TokenService = Depends(get_token_service),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """Resolve the access token on the request to a sanitized user.

    The token is read from the ``accessToken`` cookie, falling back to an
    ``Authorization: Bearer`` header.

    Raises:
        UnauthorizedError: If the token is missing, invalid or expired, or
            the user no longer exists
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token and credentials is not None:
        token = credentials.credentials

    if not token:
        raise UnauthorizedError("Authentication token is missing")

    try:
        user_id = token_service.verify(token, "access")
    except InvalidTokenError as e:
        logger.warning("access_token_rejected", error=str(e))
        raise UnauthorizedError("Invalid access token")

    user = await user_service.get_by_id(user_id)
    if user is None:
        raise UnauthorizedError("Invalid access token")

    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user.to_public()
