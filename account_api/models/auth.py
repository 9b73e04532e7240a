"""Auth request and response models."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from account_api.models.user import User


class CamelModel(BaseModel):
    """Accepts both camelCase and snake_case keys, serializes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegistrationFields(CamelModel):
    """Text fields of a registration form.

    Blank values are accepted here and rejected by the registration workflow,
    so that every missing field surfaces as the same ``ValidationError``.
    """

    full_name: str = ""
    email: str = ""
    username: str = ""
    password: str = ""


class LoginRequest(CamelModel):
    """Login credentials. Either email or username identifies the user.

    Attributes:
        email: Registered email address
        username: Registered username (case-insensitive)
        password: Plain-text password
    """

    email: Optional[str] = None
    username: Optional[str] = None
    password: str = ""


class RefreshRequest(CamelModel):
    """Refresh token supplied in the body when no cookie is present."""

    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    old_password: str = ""
    new_password: str = ""


class UpdateAccountRequest(CamelModel):
    full_name: str = ""
    email: str = ""


class TokenPair(CamelModel):
    """A freshly issued access/refresh token pair."""

    access_token: str
    refresh_token: str


class LoginResult(CamelModel):
    """Successful login: the sanitized user plus both tokens.

    Attributes:
        user: Sanitized user record
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived JWT for obtaining a new pair
    """

    user: User
    access_token: str
    refresh_token: str
    token_type: str = Field(default="bearer")
