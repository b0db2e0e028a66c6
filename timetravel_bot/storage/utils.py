from __future__ import annotations

import os
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from ..errors import RepositoryUnavailable


def _sqlite_busy_timeout_ms() -> int:
    raw = os.getenv("RANGE_SQLITE_BUSY_TIMEOUT_MS", "5000").strip()
    try:
        timeout = int(raw)
    except ValueError:
        timeout = 5000
    return max(0, min(timeout, 60000))


@asynccontextmanager
async def _sqlite_connection(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    try:
        async with aiosqlite.connect(db_path) as db:
            timeout_ms = _sqlite_busy_timeout_ms()
            if timeout_ms > 0:
                await db.execute(f"PRAGMA busy_timeout={timeout_ms}")
            yield db
    except sqlite3.Error as exc:
        raise RepositoryUnavailable(f"SQLite range store failed: {exc}") from exc


def _parse_timestamp(value: object) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _as_optional_int(value: object) -> int | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return int(text)
