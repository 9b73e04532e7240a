"""Credential store: user records in PostgreSQL."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import bcrypt
import structlog

from account_api.database import get_pool
from account_api.models.user import UserRecord

logger = structlog.get_logger(__name__)

# bcrypt only accepts passwords up to this many bytes
MAX_PASSWORD_BYTES = 72

USER_COLUMNS = (
    "id, username, email, full_name, password_hash, avatar, cover_image, "
    "refresh_token, created_at, updated_at"
)


def password_too_long(password: str) -> bool:
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES


def _row_to_record(row) -> UserRecord:
    return UserRecord(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        full_name=row["full_name"],
        password_hash=row["password_hash"],
        avatar=row["avatar"],
        cover_image=row["cover_image"],
        refresh_token=row["refresh_token"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for user CRUD operations and password verification.

    Store errors (``asyncpg`` exceptions) propagate unchanged; workflows and
    the HTTP error handlers decide how to classify them.
    """

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string
        """
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Malformed hashes count as a mismatch.
        """
        try:
            return bcrypt.checkpw(
                password.encode("utf-8"),
                password_hash.encode("utf-8"),
            )
        except (ValueError, TypeError):
            return False

    async def create_user(
        self,
        full_name: str,
        email: str,
        username: str,
        password: str,
        avatar: str,
        cover_image: str = "",
    ) -> UserRecord:
        """Insert a new user with a hashed password.

        Args:
            full_name: Display name
            email: Unique email address (stored lowercased)
            username: Unique username (stored lowercased)
            password: Plain-text password (will be hashed)
            avatar: Avatar URL
            cover_image: Cover image URL

        Returns:
            The created record

        Raises:
            asyncpg.UniqueViolationError: If username or email is taken
        """
        user_id = uuid4()
        now = datetime.now(timezone.utc)
        password_hash = self.hash_password(password)

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO users (id, username, email, full_name, password_hash,
                                   avatar, cover_image, refresh_token, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, NULL, $8, $9)
                RETURNING {USER_COLUMNS}
                """,
                user_id,
                username.strip().lower(),
                email.strip().lower(),
                full_name.strip(),
                password_hash,
                avatar,
                cover_image,
                now,
                now,
            )

        logger.info("user_created", user_id=str(user_id), username=row["username"])
        return _row_to_record(row)

    async def get_by_id(self, user_id: UUID) -> Optional[UserRecord]:
        """Get a user by UUID, or None if not found."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None
        return _row_to_record(row)

    async def find_by_username_or_email(
        self,
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[UserRecord]:
        """Find the first user matching either username or email.

        Both comparisons are case-insensitive. Blank criteria are ignored;
        with no criteria at all nothing matches.
        """
        clauses = []
        params = []

        if username and username.strip():
            params.append(username.strip())
            clauses.append(f"LOWER(username) = LOWER(${len(params)})")

        if email and email.strip():
            params.append(email.strip())
            clauses.append(f"LOWER(email) = LOWER(${len(params)})")

        if not clauses:
            return None

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE {' OR '.join(clauses)} LIMIT 1",
                *params,
            )

        if row is None:
            return None
        return _row_to_record(row)

    async def set_refresh_token(self, user_id: UUID, refresh_token: Optional[str]) -> bool:
        """Overwrite the stored refresh token; None clears it.

        Last writer wins: concurrent logins each rotate the token and only
        the most recent one remains valid.

        Returns:
            True if the user row was updated
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE users SET refresh_token = $1 WHERE id = $2",
                refresh_token,
                user_id,
            )

        updated = result == "UPDATE 1"
        logger.info(
            "refresh_token_stored" if refresh_token else "refresh_token_cleared",
            user_id=str(user_id),
            updated=updated,
        )
        return updated

    async def update_password(self, user_id: UUID, new_password: str) -> bool:
        """Hash and store a new password. Returns True if the row was updated."""
        password_hash = self.hash_password(new_password)
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE users SET password_hash = $1, updated_at = $2 WHERE id = $3",
                password_hash,
                now,
                user_id,
            )

        updated = result == "UPDATE 1"
        logger.info("password_updated", user_id=str(user_id), updated=updated)
        return updated

    async def update_fields(
        self,
        user_id: UUID,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        avatar: Optional[str] = None,
        cover_image: Optional[str] = None,
    ) -> Optional[UserRecord]:
        """Update profile fields that are not None.

        Returns:
            Updated record, or None if the user was not found

        Raises:
            asyncpg.UniqueViolationError: If the new email is taken
        """
        # Build SET clause dynamically for non-None fields
        set_clauses = []
        params = []

        for column, value in (
            ("full_name", full_name.strip() if full_name is not None else None),
            ("email", email.strip().lower() if email is not None else None),
            ("avatar", avatar),
            ("cover_image", cover_image),
        ):
            if value is not None:
                params.append(value)
                set_clauses.append(f"{column} = ${len(params)}")

        if not set_clauses:
            return await self.get_by_id(user_id)

        params.append(datetime.now(timezone.utc))
        set_clauses.append(f"updated_at = ${len(params)}")

        params.append(user_id)
        query = f"""
            UPDATE users
            SET {', '.join(set_clauses)}
            WHERE id = ${len(params)}
            RETURNING {USER_COLUMNS}
        """

        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(query, *params)

        if row is None:
            return None

        logger.info(
            "user_updated",
            user_id=str(user_id),
            fields_updated=[c.split(" = ")[0] for c in set_clauses if "updated_at" not in c],
        )
        return _row_to_record(row)

    async def delete_user(self, user_id: UUID) -> bool:
        """Hard-delete a user. Only used to undo a failed registration.

        Returns:
            True if the user was deleted, False if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)

        deleted = result == "DELETE 1"

        if deleted:
            logger.info("user_deleted", user_id=str(user_id))
        else:
            logger.warning("user_delete_not_found", user_id=str(user_id))

        return deleted
