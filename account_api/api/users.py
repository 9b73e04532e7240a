"""User account endpoints."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional
from uuid import uuid4

import structlog
from fastapi import APIRouter, Cookie, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse

from account_api.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_auth_service,
    get_current_user,
    get_profile_service,
)
from account_api.config import Settings, get_settings
from account_api.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegistrationFields,
    TokenPair,
    UpdateAccountRequest,
)
from account_api.models.media import ProfileMedia
from account_api.models.response import ApiResponse
from account_api.models.user import User
from account_api.services.auth_service import AuthService
from account_api.services.profile_service import ProfileService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _respond(data: Any, message: str, status_code: int = 200) -> JSONResponse:
    envelope = ApiResponse(status_code=status_code, data=data, message=message)
    return JSONResponse(
        status_code=status_code,
        content=envelope.model_dump(by_alias=True, mode="json"),
    )


def _set_session_cookies(response: JSONResponse, pair: TokenPair, settings: Settings) -> None:
    for name, value in (
        (ACCESS_TOKEN_COOKIE, pair.access_token),
        (REFRESH_TOKEN_COOKIE, pair.refresh_token),
    ):
        response.set_cookie(
            name,
            value,
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
        )


def _clear_session_cookies(response: JSONResponse, settings: Settings) -> None:
    for name in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            name,
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
        )


async def _stage(upload: Optional[UploadFile], temp_dir: Path) -> Optional[Path]:
    """Write an uploaded file into the temp dir; None if nothing was sent."""
    if upload is None or not upload.filename:
        return None
    temp_dir.mkdir(parents=True, exist_ok=True)
    path = temp_dir / f"{uuid4().hex}{Path(upload.filename).suffix.lower()}"
    path.write_bytes(await upload.read())
    return path


@asynccontextmanager
async def staged_media(
    settings: Settings,
    avatar: Optional[UploadFile] = None,
    cover_image: Optional[UploadFile] = None,
) -> AsyncIterator[ProfileMedia]:
    """Stage multipart files on disk for the duration of a request.

    Files the media store never consumed are removed on exit.
    """
    temp_dir = Path(settings.upload_temp_dir)
    staged: List[Path] = []
    try:
        avatar_path = await _stage(avatar, temp_dir)
        if avatar_path is not None:
            staged.append(avatar_path)
        cover_path = await _stage(cover_image, temp_dir)
        if cover_path is not None:
            staged.append(cover_path)
        yield ProfileMedia(avatar=avatar_path, cover_image=cover_path)
    finally:
        for path in staged:
            path.unlink(missing_ok=True)


@router.post("/register")
async def register(
    full_name: str = Form("", alias="fullName"),
    email: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    profile_service: ProfileService = Depends(get_profile_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Register a user with an avatar and a cover image.

    Raises:
        ValidationError 400: Missing field or file
        ConflictError 409: Username or email already registered
        UploadError 500: An image could not be uploaded
    """
    fields = RegistrationFields(
        full_name=full_name, email=email, username=username, password=password
    )
    async with staged_media(settings, avatar, cover_image) as media:
        user = await profile_service.register(fields, media)

    return _respond(user, "User registered successfully")


@router.post("/login")
async def login(
    request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Login with email or username and password.

    Sets ``accessToken`` and ``refreshToken`` cookies and returns both
    tokens in the body.
    """
    result = await auth_service.login(
        password=request.password, email=request.email, username=request.username
    )
    response = _respond(result, "User logged in successfully")
    _set_session_cookies(
        response,
        TokenPair(access_token=result.access_token, refresh_token=result.refresh_token),
        settings,
    )
    return response


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    await auth_service.logout(current_user.id)
    response = _respond({}, "User logged out successfully")
    _clear_session_cookies(response, settings)
    return response


@router.post("/refresh-token")
async def refresh_token(
    request: Optional[RefreshRequest] = None,
    refresh_cookie: Optional[str] = Cookie(None, alias=REFRESH_TOKEN_COOKIE),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """Rotate the refresh token and issue a new access token.

    The token is taken from the ``refreshToken`` cookie, or the request
    body when no cookie is present.
    """
    incoming = refresh_cookie or (request.refresh_token if request else None)
    pair = await auth_service.refresh(incoming)
    response = _respond(pair, "Access token refreshed")
    _set_session_cookies(response, pair, settings)
    return response


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    await auth_service.change_password(
        current_user.id, request.old_password, request.new_password
    )
    return _respond({}, "Password changed successfully")


@router.get("/current-user")
async def current_user(current_user: User = Depends(get_current_user)) -> JSONResponse:
    return _respond(current_user, "Current user fetched successfully")


@router.patch("/update-account")
async def update_account(
    request: UpdateAccountRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    user = await auth_service.update_account(
        current_user.id, request.full_name, request.email
    )
    return _respond(user, "Account details updated successfully")


@router.patch("/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    async with staged_media(settings, avatar=avatar) as media:
        user = await profile_service.update_avatar(current_user.id, media.avatar)
    return _respond(user, "Avatar updated successfully")


@router.patch("/cover-image")
async def update_cover_image(
    cover_image: Optional[UploadFile] = File(None, alias="coverImage"),
    current_user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    async with staged_media(settings, cover_image=cover_image) as media:
        user = await profile_service.update_cover_image(current_user.id, media.cover_image)
    return _respond(user, "Cover image updated successfully")
