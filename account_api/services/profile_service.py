"""Profile media workflow: registration with image uploads and image replacement."""

from pathlib import Path
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from account_api.errors import (
    ApiError,
    ConflictError,
    InternalError,
    NotFoundError,
    UploadError,
    ValidationError,
)
from account_api.models.auth import RegistrationFields
from account_api.models.media import ProfileMedia, UploadedAsset
from account_api.models.user import User, UserRecord
from account_api.services.media_service import MediaStore, MediaStoreError
from account_api.services.saga import Saga
from account_api.services.user_service import (
    MAX_PASSWORD_BYTES,
    UserService,
    password_too_long,
)

logger = structlog.get_logger(__name__)


class ProfileService:
    """Registers users and replaces their avatar or cover image."""

    def __init__(self, user_service: UserService, media_store: MediaStore):
        self.user_service = user_service
        self.media_store = media_store

    async def _upload(self, local_path: Path, label: str) -> UploadedAsset:
        try:
            asset = await self.media_store.upload(local_path)
        except MediaStoreError as e:
            logger.error("profile_media_upload_failed", media=label, error=str(e))
            raise UploadError(f"Failed to upload {label}") from e
        if not asset or not asset.url:
            raise UploadError(f"Failed to upload {label}")
        return asset

    async def _discard(self, asset: UploadedAsset) -> None:
        await self.media_store.delete(asset.public_id, asset.resource_type)

    async def register(self, fields: RegistrationFields, media: ProfileMedia) -> User:
        """Create a user whose avatar and cover image are already hosted.

        Steps: validate, reject duplicates, upload avatar, upload cover
        image, create the record and read it back. A failing step undoes
        every earlier upload (and the record, if it was written) before its
        error propagates.

        Args:
            fields: Full name, email, username and password
            media: Staged avatar and cover image files; both are required

        Returns:
            The sanitized user record

        Raises:
            ValidationError: If a text field is blank, the password is too
                long for bcrypt, or a file is missing
            ConflictError: If the username or email is already registered
            UploadError: If either upload fails
            InternalError: If the record cannot be created or read back
        """
        if any(
            not value.strip()
            for value in (fields.full_name, fields.email, fields.username, fields.password)
        ):
            raise ValidationError("All fields are required")
        if password_too_long(fields.password):
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
            )

        existing = await self.user_service.find_by_username_or_email(
            username=fields.username.lower(), email=fields.email
        )
        if existing is not None:
            raise ConflictError("User with this username or email already exists")

        if media.avatar is None:
            raise ValidationError("Avatar image is missing")
        if media.cover_image is None:
            raise ValidationError("Cover image is missing")

        async def create_record(results) -> UserRecord:
            try:
                return await self.user_service.create_user(
                    full_name=fields.full_name,
                    email=fields.email,
                    username=fields.username,
                    password=fields.password,
                    avatar=results["avatar"].url,
                    cover_image=results["cover_image"].url,
                )
            except asyncpg.UniqueViolationError as e:
                raise ConflictError("User with this username or email already exists") from e
            except Exception as e:
                raise InternalError("Something went wrong while registering the user") from e

        async def remove_record(record: UserRecord) -> None:
            await self.user_service.delete_user(record.id)

        async def read_back(results) -> UserRecord:
            try:
                created = await self.user_service.get_by_id(results["user"].id)
            except Exception as e:
                raise InternalError("Something went wrong while registering the user") from e
            if created is None:
                raise InternalError("Something went wrong while registering the user")
            return created

        saga = (
            Saga("register_user")
            .step("avatar", lambda _: self._upload(media.avatar, "avatar"), self._discard)
            .step(
                "cover_image",
                lambda _: self._upload(media.cover_image, "cover image"),
                self._discard,
            )
            .step("user", create_record, remove_record)
            .step("created", read_back)
        )
        results = await saga.run()

        user = results["created"]
        logger.info("user_registered", user_id=str(user.id), username=user.username)
        return user.to_public()

    async def _replace(
        self, user_id: UUID, local_path: Optional[Path], field: str, label: str
    ) -> User:
        if local_path is None:
            raise ValidationError(f"{label.capitalize()} file is missing")

        async def store_url(results) -> UserRecord:
            try:
                updated = await self.user_service.update_fields(
                    user_id, **{field: results["asset"].url}
                )
            except ApiError:
                raise
            except Exception as e:
                raise InternalError(f"Something went wrong while updating the {label}") from e
            if updated is None:
                raise NotFoundError("User does not exist")
            return updated

        # The previously stored asset stays on the media host.
        saga = (
            Saga(f"update_{field}")
            .step("asset", lambda _: self._upload(local_path, label), self._discard)
            .step("user", store_url)
        )
        results = await saga.run()

        logger.info("profile_media_updated", user_id=str(user_id), media=field)
        return results["user"].to_public()

    async def update_avatar(self, user_id: UUID, local_path: Optional[Path]) -> User:
        """Upload a new avatar and point the user record at it.

        Raises:
            ValidationError: If no file was supplied
            UploadError: If the upload fails
        """
        return await self._replace(user_id, local_path, "avatar", "avatar")

    async def update_cover_image(self, user_id: UUID, local_path: Optional[Path]) -> User:
        """Upload a new cover image and point the user record at it."""
        return await self._replace(user_id, local_path, "cover_image", "cover image")
