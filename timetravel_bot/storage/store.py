from __future__ import annotations

from .ranges import RoleRangesMixin
from .schema import RangeSchemaMixin
from .settings import GuildSettingsMixin
from .utils import _sqlite_connection


class RangeStore(
    RangeSchemaMixin,
    RoleRangesMixin,
    GuildSettingsMixin,
):
    """SQLite store for per-guild role ranges and guild settings."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("SELECT 1")
