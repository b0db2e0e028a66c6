from __future__ import annotations

import logging

import discord

from ...engine import RoleReconciler
from ...ingestion import IngestionResult, OwnershipClaim
from ...models import ReconciliationOutcome
from ..adapters import DiscordMemberRoles, DiscordRenderer, report_from_message

logger = logging.getLogger("timetravel_bot")


class ReportMixin:
    async def _handle_report(self, message: discord.Message) -> IngestionResult:
        report = report_from_message(message)
        result = await self.ingestion.handle(report)
        logger.debug("Report %s handled: %s", message.id, result.status.value)
        return result

    async def _resolve_text_channel(self, channel_id: int) -> discord.abc.Messageable:
        channel = self.get_channel(channel_id)
        if channel is None:
            channel = await self.fetch_channel(channel_id)
        return channel

    async def _notify_channel(self, channel_id: int, text: str) -> None:
        channel = await self._resolve_text_channel(channel_id)
        await channel.send(text)

    async def _reconcile_claim(self, claim: OwnershipClaim) -> ReconciliationOutcome:
        guild = self.get_guild(claim.guild_id)
        if guild is None:
            guild = await self.fetch_guild(claim.guild_id)
        roles = DiscordMemberRoles(guild)
        member = await roles.fetch_member(claim.owner_id)
        channel = await self._resolve_text_channel(claim.channel_id)

        logger.info("Assigning roles for %s with time travel count: %s", member, claim.value)
        ranges = await self.store.list_ranges(guild.id)
        outcome = await RoleReconciler(roles).run(guild.id, member.id, ranges, claim.value)

        renderer = DiscordRenderer(
            channel,
            guild,
            member,
            view_timeout=float(self.settings.undo_ttl_seconds),
        )
        await self.presenter.present(outcome, member.id, renderer)
        return outcome
