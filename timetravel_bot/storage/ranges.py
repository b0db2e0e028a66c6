from __future__ import annotations

import aiosqlite

from ..models import RoleRange
from .utils import _parse_timestamp, _sqlite_connection


class RoleRangesMixin:
    async def list_ranges(self, guild_id: int) -> list[RoleRange]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT guild_id, min_value, max_value, role_id, created_at
                FROM role_ranges
                WHERE guild_id = ?
                ORDER BY min_value ASC, range_id ASC
                """,
                (str(guild_id),),
            ) as cursor:
                rows = await cursor.fetchall()
        return [
            RoleRange(
                guild_id=int(row["guild_id"]),
                min_value=int(row["min_value"]),
                max_value=None if row["max_value"] is None else int(row["max_value"]),
                role_id=int(row["role_id"]),
                created_at=_parse_timestamp(row["created_at"]),
            )
            for row in rows
        ]

    async def add_range(self, guild_id: int, min_value: int, max_value: int | None, role_id: int) -> None:
        # Validates bounds before touching the database.
        RoleRange(guild_id=guild_id, min_value=min_value, max_value=max_value, role_id=role_id)
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO role_ranges (guild_id, min_value, max_value, role_id, created_at)
                VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                """,
                (str(guild_id), int(min_value), max_value, str(role_id)),
            )
            await db.commit()

    async def remove_range(self, guild_id: int, role_id: int) -> int:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM role_ranges WHERE guild_id = ? AND role_id = ?",
                (str(guild_id), str(role_id)),
            )
            removed = cursor.rowcount
            await cursor.close()
            await db.commit()
        return max(0, int(removed or 0))
