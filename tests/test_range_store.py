from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import aiosqlite
import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from timetravel_bot.errors import RepositoryUnavailable  # noqa: E402
from timetravel_bot.storage.store import RangeStore  # noqa: E402
from timetravel_bot.storage.utils import _sqlite_connection  # noqa: E402


GUILD = 123456789012345678
OTHER_GUILD = 42


def test_fresh_guild_gets_default_settings(tmp_path: Path) -> None:
    async def _run():
        store = RangeStore(tmp_path / "ranges.db", default_prefix="ep")
        await store.init()
        return await store.get_settings(GUILD), await store.list_ranges(GUILD)

    settings, ranges = asyncio.run(_run())

    assert settings.verification_channel_id is None
    assert settings.command_prefix == "ep"
    assert ranges == []


def test_ranges_round_trip_with_snowflake_ids_and_open_end(tmp_path: Path) -> None:
    async def _run():
        store = RangeStore(tmp_path / "ranges.db")
        await store.init()
        await store.add_range(GUILD, 25, None, 987654321098765432)
        await store.add_range(GUILD, 0, 24, 876543210987654321)
        await store.add_range(OTHER_GUILD, 0, 5, 1)
        return await store.list_ranges(GUILD)

    ranges = asyncio.run(_run())

    assert [(r.min_value, r.max_value, r.role_id) for r in ranges] == [
        (0, 24, 876543210987654321),
        (25, None, 987654321098765432),
    ]
    assert all(r.guild_id == GUILD for r in ranges)
    assert ranges[0].created_at is not None


def test_add_range_rejects_inverted_bounds_before_writing(tmp_path: Path) -> None:
    async def _run():
        store = RangeStore(tmp_path / "ranges.db")
        await store.init()
        with pytest.raises(ValueError):
            await store.add_range(GUILD, 10, 5, 1)
        return await store.list_ranges(GUILD)

    assert asyncio.run(_run()) == []


def test_remove_range_deletes_every_mapping_for_the_role(tmp_path: Path) -> None:
    async def _run():
        store = RangeStore(tmp_path / "ranges.db")
        await store.init()
        await store.add_range(GUILD, 0, 10, 7)
        await store.add_range(GUILD, 50, None, 7)
        await store.add_range(GUILD, 11, 49, 8)
        removed = await store.remove_range(GUILD, 7)
        again = await store.remove_range(GUILD, 7)
        return removed, again, await store.list_ranges(GUILD)

    removed, again, ranges = asyncio.run(_run())

    assert removed == 2
    assert again == 0
    assert [r.role_id for r in ranges] == [8]


def test_settings_upserts_keep_the_other_column(tmp_path: Path) -> None:
    async def _run():
        store = RangeStore(tmp_path / "ranges.db")
        await store.init()
        await store.set_verification_channel(GUILD, 111)
        await store.set_prefix(GUILD, "rpg!")
        await store.set_verification_channel(GUILD, 222)
        return await store.get_settings(GUILD)

    settings = asyncio.run(_run())

    assert settings.verification_channel_id == 222
    assert settings.command_prefix == "rpg!"


def test_init_migrates_v1_database_without_prefix_column(tmp_path: Path) -> None:
    db_path = tmp_path / "legacy.db"

    async def _seed() -> None:
        async with aiosqlite.connect(db_path) as db:
            await db.executescript(
                """
                CREATE TABLE guild_settings (
                    guild_id TEXT PRIMARY KEY,
                    verification_channel_id TEXT,
                    created_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
                );
                INSERT INTO guild_settings (guild_id, verification_channel_id) VALUES ('42', '99');
                PRAGMA user_version = 1;
                """
            )
            await db.commit()

    async def _run():
        await _seed()
        store = RangeStore(db_path)
        await store.init()
        before = await store.get_settings(OTHER_GUILD)
        await store.set_prefix(OTHER_GUILD, "tt!")
        after = await store.get_settings(OTHER_GUILD)
        async with aiosqlite.connect(db_path) as db:
            async with db.execute("PRAGMA user_version") as cursor:
                version = (await cursor.fetchone())[0]
        return before, after, version

    before, after, version = asyncio.run(_run())

    assert before.verification_channel_id == 99
    assert before.command_prefix == "ep"
    assert after.command_prefix == "tt!"
    assert version == RangeStore.SCHEMA_VERSION


def test_newer_schema_refuses_to_start_unless_reset_allowed(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "future.db"

    async def _seed() -> None:
        async with aiosqlite.connect(db_path) as db:
            await db.executescript(
                """
                CREATE TABLE role_ranges (range_id INTEGER PRIMARY KEY, guild_id TEXT);
                PRAGMA user_version = 99;
                """
            )
            await db.commit()

    asyncio.run(_seed())
    monkeypatch.delenv("RANGE_SQLITE_RESET_ON_SCHEMA_MISMATCH", raising=False)
    with pytest.raises(RuntimeError, match="schema version mismatch"):
        asyncio.run(RangeStore(db_path).init())

    monkeypatch.setenv("RANGE_SQLITE_RESET_ON_SCHEMA_MISMATCH", "1")

    async def _reset_and_use():
        store = RangeStore(db_path)
        await store.init()
        await store.add_range(GUILD, 1, 2, 3)
        return await store.list_ranges(GUILD)

    assert len(asyncio.run(_reset_and_use())) == 1


def test_driver_errors_surface_as_repository_unavailable(tmp_path: Path) -> None:
    async def _run() -> None:
        async with _sqlite_connection(tmp_path / "broken.db") as db:
            await db.execute("SELECT * FROM table_that_does_not_exist")

    with pytest.raises(RepositoryUnavailable):
        asyncio.run(_run())
