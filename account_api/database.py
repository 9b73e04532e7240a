"""PostgreSQL pool for the credential store, plus schema setup."""

from pathlib import Path
from typing import List, Optional

import asyncpg
import structlog

from account_api.config import Settings

logger = structlog.get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

_pool: Optional[asyncpg.Pool] = None


async def get_pool() -> asyncpg.Pool:
    """Return the pool opened by ``init_database``.

    Raises:
        RuntimeError: If the application started without a database
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_database() first.")
    return _pool


async def init_database(settings: Settings) -> asyncpg.Pool:
    """Open the pool sized by ``database_pool_min_size``/``max_size``.

    Connection failures propagate; the lifespan decides whether the app
    keeps running without a credential store.
    """
    global _pool

    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.postgres_url,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            command_timeout=settings.database_command_timeout,
        )
        logger.info(
            "credential_store_connected",
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
        )
    return _pool


async def close_database() -> None:
    global _pool

    if _pool is not None:
        pool, _pool = _pool, None
        await pool.close()
        logger.info("credential_store_closed")


def migration_files(directory: Path = MIGRATIONS_DIR) -> List[Path]:
    """SQL files to apply, ordered by their numeric prefix."""
    if not directory.is_dir():
        return []
    return sorted(directory.glob("*.sql"))


async def run_migrations(directory: Path = MIGRATIONS_DIR) -> List[str]:
    """Apply every schema file inside a single transaction.

    Schema files use ``IF NOT EXISTS`` and are re-applied on every start.
    A failing file rolls back the whole batch.

    Returns:
        Names of the applied files
    """
    files = migration_files(directory)
    if not files:
        logger.warning("schema_files_missing", path=str(directory))
        return []

    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            for path in files:
                try:
                    await conn.execute(path.read_text())
                except asyncpg.PostgresError as e:
                    logger.error("schema_file_failed", file=path.name, error=str(e))
                    raise

    applied = [path.name for path in files]
    logger.info("schema_ready", files=applied)
    return applied


async def health_check() -> bool:
    """True when the pool is open and the ``users`` table exists."""
    if _pool is None:
        return False
    try:
        async with _pool.acquire() as conn:
            return bool(await conn.fetchval("SELECT to_regclass('public.users') IS NOT NULL"))
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.warning("credential_store_unhealthy", error=str(e))
        return False
