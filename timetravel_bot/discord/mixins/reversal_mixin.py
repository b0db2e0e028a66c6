from __future__ import annotations

import logging

import discord

from ...errors import Expired, NotFound, PermissionDenied, RoleMutationError
from ...undo import is_control_token
from ..adapters import DiscordMemberRoles
from ..common import GENERIC_APOLOGY

logger = logging.getLogger("timetravel_bot")


class ReversalMixin:
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        if interaction.type is not discord.InteractionType.component:
            return
        custom_id = str((interaction.data or {}).get("custom_id") or "")
        if not is_control_token(custom_id):
            return
        if interaction.guild is None:
            return

        try:
            message = await self._run_reversal(interaction, custom_id)
        except (Expired, NotFound, PermissionDenied) as exc:
            message = str(exc)
        except RoleMutationError as exc:
            logger.error("Failed to remove role via control %s: %s", custom_id, exc)
            message = "An error occurred while removing your role."
        except Exception as exc:
            logger.exception("Reversal control %s failed: %s", custom_id, exc)
            message = GENERIC_APOLOGY
        await interaction.response.send_message(message, ephemeral=True)

    async def _run_reversal(self, interaction: discord.Interaction, custom_id: str) -> str:
        guild = interaction.guild
        key = await self.undo_registry.invoke(interaction.user.id, custom_id, DiscordMemberRoles(guild))
        role = guild.get_role(key.role_id)
        name = role.name if role is not None else str(key.role_id)
        return f"Removed role: **{name}**."
