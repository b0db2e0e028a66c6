"""Capabilities the role logic needs from the chat platform and the store.

The engine, the undo sessions and the ingestion trigger only talk to these
protocols; ``timetravel_bot.discord.adapters`` implements them on top of
discord.py and the tests implement them with plain fakes.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Protocol, Sequence

from .models import GuildSettings, RoleRange


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    message_id: int
    author_id: int
    author_display_name: str
    author_name: str
    content: str
    is_bot: bool
    timestamp: datetime


class MemberRoleProvider(Protocol):
    async def get_current_roles(self, member_id: int) -> set[int]: ...

    async def add_roles(self, member_id: int, role_ids: Iterable[int]) -> None: ...

    async def remove_roles(self, member_id: int, role_ids: Iterable[int]) -> None: ...

    async def list_guild_role_ids(self, guild_id: int) -> set[int]: ...


class MessageHistoryProvider(Protocol):
    async def fetch_recent(self, channel_id: int, limit: int) -> Sequence[HistoryEntry]: ...


class Renderer(Protocol):
    def render(self, outcome: Any, owner_id: int) -> Any: ...

    def register_control(self, handle: Any, owner_id: int, role_id: int, token: str) -> str: ...

    async def publish(self, handle: Any) -> None: ...


class RangeRepository(Protocol):
    async def list_ranges(self, guild_id: int) -> list[RoleRange]: ...

    async def add_range(self, guild_id: int, min_value: int, max_value: int | None, role_id: int) -> None: ...

    async def remove_range(self, guild_id: int, role_id: int) -> int: ...

    async def get_settings(self, guild_id: int) -> GuildSettings: ...

    async def set_verification_channel(self, guild_id: int, channel_id: int) -> None: ...

    async def set_prefix(self, guild_id: int, prefix: str) -> None: ...
