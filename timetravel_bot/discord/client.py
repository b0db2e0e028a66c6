from __future__ import annotations

import asyncio
import logging

import discord

from ..commands import AdminCommands
from ..config import Settings
from ..ingestion import IngestionTrigger
from ..ports import RangeRepository
from ..undo import ConfirmationPresenter, UndoRegistry
from .adapters import DiscordHistory
from .mixins import CommandMixin, MessageMixin, ReportMixin, ReversalMixin

logger = logging.getLogger("timetravel_bot")


class TimeTravelDiscordBot(
    MessageMixin,
    ReportMixin,
    CommandMixin,
    ReversalMixin,
    discord.Client,
):
    def __init__(
        self,
        settings: Settings,
        store: RangeRepository,
        undo_registry: UndoRegistry,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = settings.discord_message_content_intent
        intents.members = settings.discord_members_intent

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.undo_registry = undo_registry
        self.presenter = ConfirmationPresenter(undo_registry)
        self.admin_commands = AdminCommands(store)
        self.ingestion = IngestionTrigger(
            store,
            DiscordHistory(self),
            reporting_bot_id=settings.reporting_bot_id,
            notify=self._notify_channel,
            reconcile=self._reconcile_claim,
            policy=settings.ownership_policy(),
            progress_field_name=settings.progress_field_name,
            progress_label=settings.progress_label,
        )

    async def setup_hook(self) -> None:
        await self.store.init()

    async def close(self) -> None:
        await self._run_shutdown_step("store.close", self.store.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Bot is online as %s (%s)", self.user, self.user.id)
