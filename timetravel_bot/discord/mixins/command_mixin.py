from __future__ import annotations

import discord

from ...commands import CommandContext, CommandReply, split_command
from ..common import card_to_embed, permission_names


class CommandMixin:
    async def _try_handle_admin_command(self, message: discord.Message) -> bool:
        if message.guild is None or not isinstance(message.author, discord.Member):
            return False
        if not message.content:
            return False

        guild_settings = await self.store.get_settings(message.guild.id)
        namespace = self.settings.command_namespace
        args = split_command(message.content, guild_settings.command_prefix, namespace)
        if args is None:
            return False

        ctx = CommandContext(
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            author_id=message.author.id,
            permissions=permission_names(message.author),
            guild_role_ids=frozenset(role.id for role in message.guild.roles),
            prefix=guild_settings.command_prefix,
            namespace=namespace,
        )
        reply = await self.admin_commands.dispatch(ctx, args)
        await self._send_command_reply(message, reply)
        return True

    async def _send_command_reply(self, message: discord.Message, reply: CommandReply) -> None:
        if reply.card is not None:
            await message.reply(content=reply.content, embed=card_to_embed(reply.card))
        else:
            await message.reply(reply.content or "Done.")
