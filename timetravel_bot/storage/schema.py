from __future__ import annotations

import logging
import os
from pathlib import Path

import aiosqlite

from .utils import _sqlite_connection

logger = logging.getLogger("timetravel_bot")


class RangeSchemaMixin:
    # v1: role_ranges + guild_settings without prefix; v2: per-guild command prefix.
    SCHEMA_VERSION = 2

    def __init__(self, db_path: Path, default_prefix: str = "ep") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.default_prefix = default_prefix

    @staticmethod
    def _allow_destructive_reset_on_mismatch() -> bool:
        raw = os.getenv("RANGE_SQLITE_RESET_ON_SCHEMA_MISMATCH", "")
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

    async def _has_user_tables(self, db: aiosqlite.Connection) -> bool:
        async with db.execute(
            """
            SELECT 1
            FROM sqlite_master
            WHERE type = 'table'
              AND name NOT LIKE 'sqlite_%'
            LIMIT 1
            """
        ) as cursor:
            row = await cursor.fetchone()
        return bool(row)

    async def init(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0
            has_tables = await self._has_user_tables(db)

            if version > self.SCHEMA_VERSION:
                if has_tables and self._allow_destructive_reset_on_mismatch():
                    await self._reset_schema(db)
                    await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
                    await db.commit()
                    return
                raise RuntimeError(
                    "SQLite schema version mismatch detected (database is newer than this bot build). "
                    f"Found user_version={version}, supported={self.SCHEMA_VERSION}. "
                    "Set RANGE_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to allow destructive reset."
                )

            await self._create_schema(db)
            if has_tables:
                await self._migrate_schema(db, version)
            if version != self.SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
            await db.commit()
        logger.info("Range store ready at %s (schema v%s)", self.db_path, self.SCHEMA_VERSION)

    async def close(self) -> None:
        # Connections are opened per call; nothing is held between calls.
        return None

    async def _reset_schema(self, db: aiosqlite.Connection) -> None:
        for table in ("role_ranges", "guild_settings"):
            await db.execute(f"DROP TABLE IF EXISTS {table}")
        await self._create_schema(db)

    async def _table_columns(self, db: aiosqlite.Connection, table_name: str) -> set[str]:
        cols: set[str] = set()
        async with db.execute(f"PRAGMA table_info({table_name})") as cursor:
            rows = await cursor.fetchall()
        for row in rows:
            cols.add(str(row[1]))
        return cols

    async def _add_column_if_missing(self, db: aiosqlite.Connection, table_name: str, column_sql: str) -> None:
        column_name = str(column_sql.split()[0]).strip()
        if not column_name:
            return
        cols = await self._table_columns(db, table_name)
        if column_name in cols:
            return
        await db.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_sql}")

    async def _migrate_schema(self, db: aiosqlite.Connection, from_version: int) -> None:
        if from_version < 2:
            logger.info("Migrating range store schema from v%s to v2", from_version)
        # Idempotent, so it also repairs databases created before versioning.
        await self._add_column_if_missing(db, "guild_settings", "command_prefix TEXT")

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS role_ranges (
                range_id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                min_value INTEGER NOT NULL CHECK (min_value >= 0),
                max_value INTEGER,
                role_id TEXT NOT NULL,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                CHECK (max_value IS NULL OR max_value >= min_value)
            );

            CREATE INDEX IF NOT EXISTS idx_role_ranges_guild
            ON role_ranges(guild_id, role_id);

            CREATE TABLE IF NOT EXISTS guild_settings (
                guild_id TEXT PRIMARY KEY,
                verification_channel_id TEXT,
                command_prefix TEXT,
                created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
