from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncpg

from ..errors import RepositoryUnavailable
from ..models import GuildSettings, RoleRange

logger = logging.getLogger("timetravel_bot")

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class PostgresRangeStore:
    """Postgres-backed range store implementing the same API as RangeStore."""

    SCHEMA_VERSION = 2
    backend_name = "postgres"

    def __init__(self, dsn: str, default_prefix: str = "ep") -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("POSTGRES_DSN cannot be empty")
        self.default_prefix = default_prefix
        self._pool: asyncpg.Pool | None = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            try:
                self._pool = await asyncpg.create_pool(
                    dsn=self.dsn,
                    min_size=1,
                    max_size=4,
                    command_timeout=30.0,
                )
            except _DRIVER_ERRORS as exc:
                raise RepositoryUnavailable(f"Could not connect to Postgres: {exc}") from exc
        return self._pool

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        pool = await self._ensure_pool()
        try:
            async with pool.acquire() as conn:
                yield conn
        except _DRIVER_ERRORS as exc:
            raise RepositoryUnavailable(f"Postgres range store failed: {exc}") from exc

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    async def ping(self) -> None:
        async with self._connection() as conn:
            await conn.execute("SELECT 1")

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            async with self._connection() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS timetravel_schema_meta (
                            id SMALLINT PRIMARY KEY DEFAULT 1,
                            version INTEGER NOT NULL
                        )
                        """
                    )
                    version = await conn.fetchval("SELECT version FROM timetravel_schema_meta WHERE id = 1")
                    version = int(version or 0)
                    if version > self.SCHEMA_VERSION:
                        raise RuntimeError(
                            f"Postgres range schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                            "Upgrade the bot before starting."
                        )
                    await self._create_schema(conn)
                    await conn.execute(
                        """
                        INSERT INTO timetravel_schema_meta (id, version) VALUES (1, $1)
                        ON CONFLICT (id) DO UPDATE SET version = EXCLUDED.version
                        """,
                        self.SCHEMA_VERSION,
                    )
            self._initialized = True
        logger.info("Postgres range store ready (schema v%s)", self.SCHEMA_VERSION)

    async def _create_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS role_ranges (
                range_id BIGSERIAL PRIMARY KEY,
                guild_id BIGINT NOT NULL,
                min_value INTEGER NOT NULL CHECK (min_value >= 0),
                max_value INTEGER,
                role_id BIGINT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                CHECK (max_value IS NULL OR max_value >= min_value)
            );

            CREATE INDEX IF NOT EXISTS idx_role_ranges_guild ON role_ranges(guild_id, role_id);

            CREATE TABLE IF NOT EXISTS guild_settings (
                guild_id BIGINT PRIMARY KEY,
                verification_channel_id BIGINT,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            ALTER TABLE guild_settings ADD COLUMN IF NOT EXISTS command_prefix TEXT;
            """
        )

    async def list_ranges(self, guild_id: int) -> list[RoleRange]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT guild_id, min_value, max_value, role_id, created_at
                FROM role_ranges
                WHERE guild_id = $1
                ORDER BY min_value ASC, range_id ASC
                """,
                int(guild_id),
            )
        return [
            RoleRange(
                guild_id=int(row["guild_id"]),
                min_value=int(row["min_value"]),
                max_value=None if row["max_value"] is None else int(row["max_value"]),
                role_id=int(row["role_id"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def add_range(self, guild_id: int, min_value: int, max_value: int | None, role_id: int) -> None:
        RoleRange(guild_id=guild_id, min_value=min_value, max_value=max_value, role_id=role_id)
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO role_ranges (guild_id, min_value, max_value, role_id)
                VALUES ($1, $2, $3, $4)
                """,
                int(guild_id),
                int(min_value),
                max_value,
                int(role_id),
            )

    async def remove_range(self, guild_id: int, role_id: int) -> int:
        async with self._connection() as conn:
            status = await conn.execute(
                "DELETE FROM role_ranges WHERE guild_id = $1 AND role_id = $2",
                int(guild_id),
                int(role_id),
            )
        # asyncpg returns the command tag, e.g. "DELETE 2".
        try:
            return int(str(status).rsplit(" ", 1)[-1])
        except ValueError:
            return 0

    async def get_settings(self, guild_id: int) -> GuildSettings:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT verification_channel_id, command_prefix FROM guild_settings WHERE guild_id = $1",
                int(guild_id),
            )
        if row is None:
            return GuildSettings(guild_id=guild_id, command_prefix=self.default_prefix)
        channel_id = row["verification_channel_id"]
        return GuildSettings(
            guild_id=guild_id,
            verification_channel_id=None if channel_id is None else int(channel_id),
            command_prefix=str(row["command_prefix"] or "").strip() or self.default_prefix,
        )

    async def set_verification_channel(self, guild_id: int, channel_id: int) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO guild_settings (guild_id, verification_channel_id)
                VALUES ($1, $2)
                ON CONFLICT (guild_id) DO UPDATE SET
                    verification_channel_id = EXCLUDED.verification_channel_id,
                    updated_at = NOW()
                """,
                int(guild_id),
                int(channel_id),
            )

    async def set_prefix(self, guild_id: int, prefix: str) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO guild_settings (guild_id, command_prefix)
                VALUES ($1, $2)
                ON CONFLICT (guild_id) DO UPDATE SET
                    command_prefix = EXCLUDED.command_prefix,
                    updated_at = NOW()
                """,
                int(guild_id),
                prefix,
            )
