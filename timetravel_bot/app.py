from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from pathlib import Path

from .config import Settings
from .discord.client import TimeTravelDiscordBot
from .storage import build_range_store
from .undo import UndoRegistry

logger = logging.getLogger("timetravel_bot")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)
    logging.getLogger("discord.http").setLevel(logging.WARNING)


def _pid_running(pid: int) -> bool:
    if os.name == "nt":
        # Signal 0 terminates the target on Windows, so a recorded pid counts as running.
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class InstanceLock:
    """PID file that keeps a second bot process off the same SQLite database."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    def holder(self) -> int | None:
        try:
            pid = int(self.path.read_text(encoding="utf-8").strip() or "0")
        except (OSError, ValueError):
            return None
        return pid if pid > 0 else None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        pid = self.holder()
        if pid is not None and pid != os.getpid() and _pid_running(pid):
            raise RuntimeError(f"Bot is already running (pid={pid}). Stop it or delete {self.path}.")
        self.path.write_text(str(os.getpid()), encoding="utf-8")

    def release(self) -> None:
        if self.holder() != os.getpid():
            return
        with contextlib.suppress(OSError):
            self.path.unlink()


def instance_lock(settings: Settings) -> contextlib.AbstractContextManager:
    if settings.storage_backend != "sqlite":
        return contextlib.nullcontext()
    return InstanceLock(settings.sqlite_path.parent / "timetravel_bot.pid")


def build_bot(settings: Settings) -> TimeTravelDiscordBot:
    store = build_range_store(settings)
    undo_registry = UndoRegistry(ttl_seconds=settings.undo_ttl_seconds)
    return TimeTravelDiscordBot(
        settings=settings,
        store=store,
        undo_registry=undo_registry,
    )


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            with contextlib.suppress(Exception):
                await asyncio.wait_for(bot.close(), timeout=10.0)


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    settings.validate()
    try:
        with instance_lock(settings):
            asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
