from __future__ import annotations

import re

import discord

from ..rendering import Card

GENERIC_APOLOGY = "An error occurred while processing your request."

EMBED_FIELD_LIMIT = 1024
EMBED_DESCRIPTION_LIMIT = 4096
BUTTON_LABEL_LIMIT = 80

_COLOURS = {
    "green": discord.Colour.green,
    "red": discord.Colour.red,
    "blue": discord.Colour.blue,
    "orange": discord.Colour.orange,
}


def collapse_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]

    window = text[:limit]
    cut = window.rfind("\n")
    if cut >= int(limit * 0.7):
        return (window[:cut].rstrip() + "\n...").strip()

    return (window[: limit - 3].rstrip() + "...").strip()


def card_to_embed(card: Card) -> discord.Embed:
    colour = _COLOURS.get(card.colour, discord.Colour.blue)()
    embed = discord.Embed(
        title=card.title,
        description=truncate(card.description, EMBED_DESCRIPTION_LIMIT) or None,
        colour=colour,
    )
    for name, value in card.fields:
        embed.add_field(name=name, value=truncate(value, EMBED_FIELD_LIMIT) or "-", inline=False)
    if card.footer:
        embed.set_footer(text=card.footer)
    return embed


def permission_names(member: object) -> frozenset[str]:
    perms = getattr(member, "guild_permissions", None)
    if perms is None:
        return frozenset()
    return frozenset(name for name, granted in perms if granted)


def member_label(member: object) -> str:
    return str(getattr(member, "display_name", None) or getattr(member, "name", None) or member)
