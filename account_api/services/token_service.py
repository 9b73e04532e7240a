"""JWT issuance and verification for access and refresh tokens."""

from datetime import datetime, timedelta, timezone
from typing import Literal
from uuid import UUID, uuid4

import jwt
import structlog

from account_api.config import Settings
from account_api.models.auth import TokenPair
from account_api.models.user import UserRecord

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"

TokenKind = Literal["access", "refresh"]


class InvalidTokenError(ValueError):
    """Token signature, expiry, type or subject claim is invalid."""


class TokenConfigurationError(RuntimeError):
    """A signing secret is missing. Fatal; never retried."""


class TokenService:
    """Signs and verifies access and refresh tokens.

    Stateless apart from the settings it was built with, so a single
    instance can be shared across concurrent requests.
    """

    def __init__(self, settings: Settings):
        self.access_secret = settings.access_token_secret
        self.refresh_secret = settings.refresh_token_secret
        self.access_ttl = timedelta(minutes=settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=settings.refresh_token_expire_days)

    def _secret_for(self, kind: TokenKind) -> str:
        secret = self.access_secret if kind == "access" else self.refresh_secret
        if not secret:
            raise TokenConfigurationError(f"{kind} token secret is not configured")
        return secret

    def issue_access_token(self, user: UserRecord) -> str:
        """Create a signed, short-lived access token.

        Args:
            user: User the token identifies

        Returns:
            Encoded JWT string

        Raises:
            TokenConfigurationError: If the access secret is empty
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "username": user.username,
            "full_name": user.full_name,
            "type": "access",
            "iat": now,
            "exp": now + self.access_ttl,
        }
        token = jwt.encode(payload, self._secret_for("access"), algorithm=JWT_ALGORITHM)
        logger.debug(
            "access_token_created",
            user_id=str(user.id),
            expires_minutes=int(self.access_ttl.total_seconds() // 60),
        )
        return token

    def issue_refresh_token(self, user_id: UUID) -> str:
        """Create a signed refresh token.

        A random ``jti`` keeps two tokens issued within the same second
        distinct, which rotation relies on.

        Raises:
            TokenConfigurationError: If the refresh secret is empty
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "type": "refresh",
            "jti": uuid4().hex,
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        token = jwt.encode(payload, self._secret_for("refresh"), algorithm=JWT_ALGORITHM)
        logger.debug(
            "refresh_token_created",
            user_id=str(user_id),
            expires_days=self.refresh_ttl.days,
        )
        return token

    def issue_pair(self, user: UserRecord) -> TokenPair:
        """Issue a new access + refresh token pair for a user."""
        return TokenPair(
            access_token=self.issue_access_token(user),
            refresh_token=self.issue_refresh_token(user.id),
        )

    def verify(self, token: str, kind: TokenKind) -> UUID:
        """Decode and validate a token of the given kind.

        Args:
            token: Encoded JWT string
            kind: "access" or "refresh"; selects the secret and the
                expected ``type`` claim

        Returns:
            The user id carried in the ``sub`` claim

        Raises:
            InvalidTokenError: If the token is invalid, expired, of the
                wrong kind or carries no usable subject
            TokenConfigurationError: If the secret for ``kind`` is empty
        """
        secret = self._secret_for(kind)
        try:
            payload = jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError(f"{kind.capitalize()} token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid {kind} token: {e}")

        if payload.get("type") != kind:
            raise InvalidTokenError(f"Invalid {kind} token: wrong token type")

        try:
            return UUID(str(payload["sub"]))
        except (KeyError, ValueError):
            raise InvalidTokenError(f"Invalid {kind} token: bad subject")
