from __future__ import annotations

from typing import Any

from ..config import Settings
from .store import RangeStore


def build_range_store(settings: Settings) -> Any:
    backend = settings.storage_backend
    if backend == "sqlite":
        return RangeStore(settings.sqlite_path, default_prefix=settings.default_command_prefix)
    if backend == "postgres":
        if not settings.postgres_dsn:
            raise ValueError("POSTGRES_DSN is required when STORAGE_BACKEND=postgres")

        from .postgres_store import PostgresRangeStore

        return PostgresRangeStore(settings.postgres_dsn, default_prefix=settings.default_command_prefix)
    raise ValueError("STORAGE_BACKEND must be 'sqlite' or 'postgres'")
