from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from .errors import NotFound, PermissionDenied, ValidationError
from .ports import RangeRepository
from .rendering import Card, channel_mention, config_card, help_card

logger = logging.getLogger("timetravel_bot")

MANAGE_ROLES = "manage_roles"
MANAGE_GUILD = "manage_guild"
ADMINISTRATOR = "administrator"
MAX_PREFIX_LENGTH = 16

_ROLE_MENTION_RE = re.compile(r"^<@&(\d+)>$")


@dataclass(slots=True)
class CommandContext:
    guild_id: int
    channel_id: int
    author_id: int
    permissions: frozenset[str]
    guild_role_ids: frozenset[int]
    prefix: str
    namespace: str = "tt"

    def has_permission(self, name: str) -> bool:
        return ADMINISTRATOR in self.permissions or name in self.permissions


@dataclass(slots=True)
class CommandReply:
    content: str | None = None
    card: Card | None = None
    changed: bool = False


def command_pattern(prefix: str, namespace: str = "tt") -> re.Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}\s+{re.escape(namespace)}(\s+|$)", re.IGNORECASE)


def split_command(content: str, prefix: str, namespace: str = "tt") -> list[str] | None:
    """Return the words after ``<prefix> <namespace>`` or ``None`` if the message is no command."""
    match = command_pattern(prefix, namespace).match(content.strip())
    if not match:
        return None
    return content.strip()[match.end() :].split()


def parse_role_id(raw: str) -> int:
    mention = _ROLE_MENTION_RE.match(raw.strip())
    text = mention.group(1) if mention else raw.strip()
    if not text.isdigit():
        raise ValidationError(f"`{raw}` is not a role ID.")
    return int(text)


def _parse_count(raw: str) -> int:
    text = raw.strip()
    if not text.isdigit():
        raise ValidationError(f"`{raw}` is not a non-negative whole number.")
    return int(text)


def setrole_usage(prefix: str, namespace: str = "tt") -> str:
    base = f"{prefix} {namespace}"
    return (
        f"Usage: `{base} setrole <min> <max> <role_id>` or `{base} setrole <min>+ <role_id>`\n"
        f"Example: `{base} setrole 25+ 123456789012345678`"
    )


def parse_setrole_args(args: Sequence[str]) -> tuple[int, int | None, int]:
    """Parse ``<min> <max> <role>`` or ``<min>+ <role>``."""
    if not args:
        raise ValidationError("Missing range and role.")
    first = args[0].strip()
    if first.endswith("+"):
        if len(args) != 2:
            raise ValidationError("Open-ended ranges take exactly a minimum and a role.")
        return _parse_count(first[:-1]), None, parse_role_id(args[1])

    if len(args) != 3:
        raise ValidationError("Bounded ranges take a minimum, a maximum and a role.")
    min_value = _parse_count(first)
    max_value = _parse_count(args[1])
    if max_value < min_value:
        raise ValidationError("The maximum must not be lower than the minimum.")
    return min_value, max_value, parse_role_id(args[2])


def validate_prefix(raw: str) -> str:
    prefix = raw.strip()
    if not prefix:
        raise ValidationError("The prefix cannot be empty.")
    if any(ch.isspace() for ch in prefix):
        raise ValidationError("The prefix cannot contain spaces.")
    if len(prefix) > MAX_PREFIX_LENGTH:
        raise ValidationError(f"The prefix must be at most {MAX_PREFIX_LENGTH} characters.")
    return prefix


class AdminCommands:
    def __init__(self, repository: RangeRepository) -> None:
        self.repository = repository

    async def dispatch(self, ctx: CommandContext, args: Sequence[str]) -> CommandReply:
        if not args:
            return CommandReply(card=help_card(ctx.prefix, ctx.namespace))

        command = args[0].lower()
        rest = list(args[1:])
        handlers = {
            "setrole": (MANAGE_ROLES, self._setrole),
            "delrole": (MANAGE_ROLES, self._delrole),
            "setchannel": (MANAGE_GUILD, self._setchannel),
            "setprefix": (MANAGE_GUILD, self._setprefix),
            "config": (MANAGE_GUILD, self._config),
        }
        entry = handlers.get(command)
        if entry is None:
            return CommandReply(
                content=f"Unknown command. Use `{ctx.prefix} {ctx.namespace}` to view available commands."
            )

        permission, handler = entry
        try:
            if not ctx.has_permission(permission):
                raise PermissionDenied("You don't have permission to use this command.")
            return await handler(ctx, rest)
        except (ValidationError, NotFound, PermissionDenied) as exc:
            return CommandReply(content=str(exc))

    async def _setrole(self, ctx: CommandContext, args: list[str]) -> CommandReply:
        try:
            min_value, max_value, role_id = parse_setrole_args(args)
        except ValidationError as exc:
            raise ValidationError(f"{exc}\n{setrole_usage(ctx.prefix, ctx.namespace)}") from exc
        if role_id not in ctx.guild_role_ids:
            raise NotFound(f"Role with ID `{role_id}` not found.")

        await self.repository.add_range(ctx.guild_id, min_value, max_value, role_id)
        upper = "infinity" if max_value is None else str(max_value)
        logger.info(
            "Registered role %s for range %s-%s in guild %s",
            role_id,
            min_value,
            upper,
            ctx.guild_id,
        )
        return CommandReply(
            content=f"Configured role with ID `{role_id}` for time travel range {min_value}-{upper}.",
            changed=True,
        )

    async def _delrole(self, ctx: CommandContext, args: list[str]) -> CommandReply:
        if len(args) != 1:
            raise ValidationError(f"Usage: `{ctx.prefix} {ctx.namespace} delrole <role_id>`")
        role_id = parse_role_id(args[0])
        removed = await self.repository.remove_range(ctx.guild_id, role_id)
        logger.info("Deleted %s role mapping(s) for role %s in guild %s", removed, role_id, ctx.guild_id)
        if not removed:
            return CommandReply(content=f"No role mapping exists for role ID `{role_id}`.")
        return CommandReply(content=f"Deleted role mapping for role ID `{role_id}`.", changed=True)

    async def _setchannel(self, ctx: CommandContext, args: list[str]) -> CommandReply:
        await self.repository.set_verification_channel(ctx.guild_id, ctx.channel_id)
        logger.info("Verification channel for guild %s set to %s", ctx.guild_id, ctx.channel_id)
        return CommandReply(
            content=f"Verification channel set to {channel_mention(ctx.channel_id)}.",
            changed=True,
        )

    async def _setprefix(self, ctx: CommandContext, args: list[str]) -> CommandReply:
        if len(args) != 1:
            raise ValidationError(f"Usage: `{ctx.prefix} {ctx.namespace} setprefix <new_prefix>`")
        prefix = validate_prefix(args[0])
        await self.repository.set_prefix(ctx.guild_id, prefix)
        logger.info("Command prefix for guild %s set to %r", ctx.guild_id, prefix)
        return CommandReply(
            content=f"Command prefix set to `{prefix}`. Use `{prefix} {ctx.namespace}` from now on.",
            changed=True,
        )

    async def _config(self, ctx: CommandContext, args: list[str]) -> CommandReply:
        settings = await self.repository.get_settings(ctx.guild_id)
        ranges = await self.repository.list_ranges(ctx.guild_id)
        return CommandReply(card=config_card(settings, ranges))
