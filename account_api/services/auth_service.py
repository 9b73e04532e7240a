"""Auth workflow: login, token refresh, logout, password and profile changes."""

import hmac
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from account_api.errors import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from account_api.models.auth import LoginResult, TokenPair
from account_api.models.user import User, UserRecord
from account_api.services.token_service import InvalidTokenError, TokenService
from account_api.services.user_service import (
    MAX_PASSWORD_BYTES,
    UserService,
    password_too_long,
)

logger = structlog.get_logger(__name__)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class AuthService:
    """Credential and session lifecycle for a single request.

    Holds no per-user state; every decision re-reads the user record.
    """

    def __init__(self, user_service: UserService, token_service: TokenService):
        self.user_service = user_service
        self.token_service = token_service

    async def _issue_and_store(self, user: UserRecord) -> TokenPair:
        """Issue a fresh pair and make its refresh token the only valid one."""
        pair = self.token_service.issue_pair(user)
        await self.user_service.set_refresh_token(user.id, pair.refresh_token)
        return pair

    async def login(
        self,
        password: str,
        email: Optional[str] = None,
        username: Optional[str] = None,
    ) -> LoginResult:
        """Authenticate by email or username and start a new session.

        Args:
            password: Plain-text password
            email: Registered email address
            username: Registered username, used when email is absent or
                as an alternative match

        Returns:
            LoginResult with the sanitized user and a new token pair

        Raises:
            ValidationError: If no identifier or no password is given
            NotFoundError: If no user matches
            InvalidCredentialsError: If the password does not match
        """
        if _blank(email) and _blank(username):
            raise ValidationError("Username or email is required")
        if _blank(password):
            raise ValidationError("Password is required")

        user = await self.user_service.find_by_username_or_email(
            username=username, email=email
        )
        if user is None:
            raise NotFoundError("User does not exist")

        if not self.user_service.verify_password(password, user.password_hash):
            logger.warning("login_invalid_password", user_id=str(user.id))
            raise InvalidCredentialsError("Invalid user credentials")

        pair = await self._issue_and_store(user)

        logger.info("user_logged_in", user_id=str(user.id), username=user.username)
        return LoginResult(
            user=user.to_public(),
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
        )

    async def refresh(self, incoming_token: Optional[str]) -> TokenPair:
        """Exchange the current refresh token for a new pair (rotation).

        A token is accepted only if it verifies and equals the value stored
        on the user record, so any token issued before the latest login,
        refresh or logout is rejected even while unexpired.

        Raises:
            UnauthorizedError: If the token is absent, invalid, belongs to a
                missing user, or is not the currently stored token
        """
        if _blank(incoming_token):
            raise UnauthorizedError("Unauthorized request")

        try:
            user_id = self.token_service.verify(incoming_token, "refresh")
        except InvalidTokenError as e:
            logger.warning("refresh_token_invalid", error=str(e))
            raise UnauthorizedError("Invalid refresh token")

        user = await self.user_service.get_by_id(user_id)
        if user is None:
            logger.warning("refresh_token_user_missing", user_id=str(user_id))
            raise UnauthorizedError("Invalid refresh token")

        if user.refresh_token is None or not hmac.compare_digest(
            user.refresh_token.encode("utf-8"), incoming_token.encode("utf-8")
        ):
            logger.warning("refresh_token_reused", user_id=str(user_id))
            raise UnauthorizedError("Refresh token is expired or used")

        pair = await self._issue_and_store(user)
        logger.info("tokens_refreshed", user_id=str(user_id))
        return pair

    async def logout(self, user_id: UUID) -> None:
        """Clear the stored refresh token, ending the session."""
        updated = await self.user_service.set_refresh_token(user_id, None)
        if not updated:
            logger.warning("logout_user_missing", user_id=str(user_id))
        logger.info("user_logged_out", user_id=str(user_id))

    async def change_password(
        self, user_id: UUID, old_password: str, new_password: str
    ) -> None:
        """Replace the password after checking the current one.

        Tokens are left untouched.

        Raises:
            ValidationError: If either password is blank or the new one is
                too long for bcrypt
            NotFoundError: If the user no longer exists
            InvalidCredentialsError: If old_password does not match
        """
        if _blank(old_password) or _blank(new_password):
            raise ValidationError("Old and new password are required")
        if password_too_long(new_password):
            raise ValidationError(
                f"Password must be at most {MAX_PASSWORD_BYTES} bytes"
            )

        user = await self.user_service.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User does not exist")

        if not self.user_service.verify_password(old_password, user.password_hash):
            logger.warning("change_password_invalid_old", user_id=str(user_id))
            raise InvalidCredentialsError("Invalid old password")

        await self.user_service.update_password(user_id, new_password)
        logger.info("password_changed", user_id=str(user_id))

    async def update_account(self, user_id: UUID, full_name: str, email: str) -> User:
        """Update full name and email.

        Raises:
            ValidationError: If either field is blank
            ConflictError: If the email belongs to another user
            NotFoundError: If the user no longer exists
        """
        if _blank(full_name) or _blank(email):
            raise ValidationError("All fields are required")

        try:
            user = await self.user_service.update_fields(
                user_id, full_name=full_name, email=email
            )
        except asyncpg.UniqueViolationError:
            raise ConflictError("Email is already in use")

        if user is None:
            raise NotFoundError("User does not exist")

        return user.to_public()
