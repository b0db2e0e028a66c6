"""discord.py implementations of the capabilities declared in ``timetravel_bot.ports``."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import discord

from ..errors import NotFound, RoleMutationError
from ..ingestion import InboundReport, ReportEmbed
from ..models import ReconciliationOutcome
from ..ports import HistoryEntry
from ..rendering import outcome_card
from .common import BUTTON_LABEL_LIMIT, card_to_embed, member_label

logger = logging.getLogger("timetravel_bot")

ROLE_SYNC_REASON = "Time travel role sync"


class DiscordMemberRoles:
    """Role reads and mutations for members of one guild."""

    def __init__(self, guild: discord.Guild) -> None:
        self.guild = guild
        self._members: dict[int, discord.Member] = {}

    async def fetch_member(self, member_id: int) -> discord.Member:
        member = self._members.get(member_id) or self.guild.get_member(member_id)
        if member is None:
            try:
                member = await self.guild.fetch_member(member_id)
            except discord.NotFound:
                raise NotFound(f"Member {member_id} is not in this server.") from None
        self._members[member_id] = member
        return member

    def _roles(self, role_ids: Iterable[int]) -> list[discord.Role]:
        roles: list[discord.Role] = []
        vanished: list[int] = []
        for role_id in role_ids:
            role = self.guild.get_role(role_id)
            if role is None:
                vanished.append(role_id)
                continue
            roles.append(role)
        if vanished:
            logger.warning("Roles %s vanished from guild=%s before mutation", vanished, self.guild.id)
            raise RoleMutationError(
                "Roles no longer exist in this server: " + ", ".join(str(role_id) for role_id in vanished)
            )
        return roles

    async def get_current_roles(self, member_id: int) -> set[int]:
        member = await self.fetch_member(member_id)
        return {role.id for role in member.roles}

    async def add_roles(self, member_id: int, role_ids: Iterable[int]) -> None:
        member = await self.fetch_member(member_id)
        roles = self._roles(role_ids)
        if not roles:
            return
        try:
            await member.add_roles(*roles, reason=ROLE_SYNC_REASON)
        except discord.HTTPException as exc:
            raise RoleMutationError(str(exc)) from exc

    async def remove_roles(self, member_id: int, role_ids: Iterable[int]) -> None:
        member = await self.fetch_member(member_id)
        roles = self._roles(role_ids)
        if not roles:
            return
        try:
            await member.remove_roles(*roles, reason=ROLE_SYNC_REASON)
        except discord.HTTPException as exc:
            raise RoleMutationError(str(exc)) from exc

    async def list_guild_role_ids(self, guild_id: int) -> set[int]:
        return {role.id for role in self.guild.roles}


class DiscordHistory:
    def __init__(self, client: discord.Client) -> None:
        self.client = client

    async def fetch_recent(self, channel_id: int, limit: int) -> Sequence[HistoryEntry]:
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(channel_id)
        entries: list[HistoryEntry] = []
        async for message in channel.history(limit=limit):
            author = message.author
            entries.append(
                HistoryEntry(
                    message_id=message.id,
                    author_id=author.id,
                    author_display_name=member_label(author),
                    author_name=str(getattr(author, "name", "") or ""),
                    content=message.content or "",
                    is_bot=bool(author.bot),
                    timestamp=message.created_at,
                )
            )
        return entries


@dataclass(slots=True)
class PendingConfirmation:
    embed: discord.Embed
    view: discord.ui.View
    tokens: list[str] = field(default_factory=list)
    message: discord.Message | None = None


class DiscordRenderer:
    """Turns an outcome into an embed plus one "Remove <role>" button per control."""

    def __init__(
        self,
        channel: discord.abc.Messageable,
        guild: discord.Guild,
        member: discord.abc.User,
        *,
        view_timeout: float | None = None,
    ) -> None:
        self.channel = channel
        self.guild = guild
        self.member = member
        self.view_timeout = view_timeout

    def render(self, outcome: ReconciliationOutcome, owner_id: int) -> PendingConfirmation:
        card = outcome_card(outcome, str(self.member))
        return PendingConfirmation(
            embed=card_to_embed(card),
            view=discord.ui.View(timeout=self.view_timeout),
        )

    def register_control(self, handle: PendingConfirmation, owner_id: int, role_id: int, token: str) -> str:
        role = self.guild.get_role(role_id)
        name = role.name if role is not None else str(role_id)
        button = discord.ui.Button(
            label=f"Remove {name}"[:BUTTON_LABEL_LIMIT],
            style=discord.ButtonStyle.primary,
            custom_id=token,
        )
        handle.view.add_item(button)
        handle.tokens.append(token)
        return token

    async def publish(self, handle: PendingConfirmation) -> None:
        if handle.tokens:
            handle.message = await self.channel.send(embed=handle.embed, view=handle.view)
        else:
            handle.message = await self.channel.send(embed=handle.embed)


def report_from_message(message: discord.Message) -> InboundReport:
    embeds = tuple(
        ReportEmbed(
            author_name=embed.author.name if embed.author else None,
            fields=tuple((str(item.name or ""), str(item.value or "")) for item in embed.fields),
        )
        for embed in message.embeds
    )
    return InboundReport(
        message_id=message.id,
        guild_id=message.guild.id if message.guild else None,
        channel_id=message.channel.id,
        author_id=message.author.id,
        author_is_bot=bool(message.author.bot),
        embeds=embeds,
        created_at=message.created_at,
    )
