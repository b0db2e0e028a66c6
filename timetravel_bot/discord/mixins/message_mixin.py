from __future__ import annotations

import contextlib
import logging

import discord

from ..common import GENERIC_APOLOGY

logger = logging.getLogger("timetravel_bot")


class MessageMixin:
    async def on_message(self, message: discord.Message) -> None:
        try:
            if message.author.bot:
                if message.guild is not None and message.author.id == self.settings.reporting_bot_id and message.embeds:
                    await self._handle_report(message)
                return
            await self._try_handle_admin_command(message)
        except Exception as exc:
            logger.exception("Error handling message %s: %s", message.id, exc)
            with contextlib.suppress(discord.HTTPException):
                await message.channel.send(GENERIC_APOLOGY)
