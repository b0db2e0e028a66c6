from __future__ import annotations

import aiosqlite

from ..models import GuildSettings
from .utils import _as_optional_int, _sqlite_connection


class GuildSettingsMixin:
    async def get_settings(self, guild_id: int) -> GuildSettings:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT verification_channel_id, command_prefix
                FROM guild_settings
                WHERE guild_id = ?
                """,
                (str(guild_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return GuildSettings(guild_id=guild_id, command_prefix=self.default_prefix)
        return GuildSettings(
            guild_id=guild_id,
            verification_channel_id=_as_optional_int(row["verification_channel_id"]),
            command_prefix=str(row["command_prefix"] or "").strip() or self.default_prefix,
        )

    async def set_verification_channel(self, guild_id: int, channel_id: int) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO guild_settings (guild_id, verification_channel_id, created_at, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                ON CONFLICT(guild_id) DO UPDATE SET
                    verification_channel_id = excluded.verification_channel_id,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (str(guild_id), str(channel_id)),
            )
            await db.commit()

    async def set_prefix(self, guild_id: int, prefix: str) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO guild_settings (guild_id, command_prefix, created_at, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                ON CONFLICT(guild_id) DO UPDATE SET
                    command_prefix = excluded.command_prefix,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (str(guild_id), prefix),
            )
            await db.commit()
