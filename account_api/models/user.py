"""User models: the stored record and its sanitized projection."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class User(BaseModel):
    """A registered user as returned to callers.

    Carries no password hash and no refresh token.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    username: str
    email: str
    full_name: str
    avatar: str
    cover_image: str = ""
    created_at: datetime
    updated_at: datetime


class UserRecord(BaseModel):
    """Full users row, including credential columns. Never serialized."""

    id: UUID
    username: str
    email: str
    full_name: str
    password_hash: str
    avatar: str
    cover_image: str = ""
    refresh_token: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def to_public(self) -> User:
        """Project the record onto the sanitized ``User`` model."""
        return User(
            id=self.id,
            username=self.username,
            email=self.email,
            full_name=self.full_name,
            avatar=self.avatar,
            cover_image=self.cover_image,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
