from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from .ports import HistoryEntry, MessageHistoryProvider, RangeRepository

logger = logging.getLogger("timetravel_bot")

DEFAULT_TRIGGER_PHRASES = ("rpg p", "rpg profile")
OWNER_ONLY_NOTICE = "Only the account owner can validate time travel levels."


@dataclass(frozen=True, slots=True)
class ReportEmbed:
    author_name: str | None
    fields: tuple[tuple[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class InboundReport:
    message_id: int
    guild_id: int | None
    channel_id: int
    author_id: int
    author_is_bot: bool
    embeds: tuple[ReportEmbed, ...]
    created_at: datetime


@dataclass(frozen=True, slots=True)
class OwnershipPolicy:
    """How a profile embed is attributed to the member who asked for it.

    This is a heuristic, not proof: anybody can type the trigger phrase
    inside the lookback window.
    """

    trigger_phrases: tuple[str, ...] = DEFAULT_TRIGGER_PHRASES
    lookback_limit: int = 50
    max_age_seconds: int | None = None
    case_sensitive: bool = False
    name_delimiter: str = " — "

    def is_trigger(self, content: str) -> bool:
        text = content.strip().casefold()
        return any(text == phrase.strip().casefold() for phrase in self.trigger_phrases)

    def embed_owner_name(self, author_name: str | None) -> str:
        raw = (author_name or "").split(self.name_delimiter, 1)[0].strip()
        return raw if self.case_sensitive else raw.casefold()

    def names_match(self, embed_name: str, entry: HistoryEntry) -> bool:
        if not embed_name:
            return False
        for candidate in (entry.author_display_name, entry.author_name):
            value = (candidate or "").strip()
            if not self.case_sensitive:
                value = value.casefold()
            if value and value == embed_name:
                return True
        return False

    def find_claim(self, history: Sequence[HistoryEntry], report: InboundReport) -> HistoryEntry | None:
        """Newest trigger-phrase message in ``history`` (ordered newest first)."""
        for entry in history:
            if entry.message_id == report.message_id or entry.is_bot:
                continue
            if not self.is_trigger(entry.content):
                continue
            if self.max_age_seconds is not None:
                age = (report.created_at - entry.timestamp).total_seconds()
                if age > self.max_age_seconds:
                    continue
            return entry
        return None


def parse_progress(embed: ReportEmbed, field_name: str = "PROGRESS", label: str = "Time travels") -> int | None:
    value = next((text for name, text in embed.fields if name.strip() == field_name), None)
    if value is None:
        return None
    pattern = re.compile(rf"\**{re.escape(label)}\**\s*:\s*\**\s*(\d[\d,]*)")
    match = pattern.search(value)
    if not match:
        return None
    return int(match.group(1).replace(",", ""))


class IngestionStatus(str, Enum):
    IGNORED_SOURCE = "ignored_source"
    IGNORED_CHANNEL = "ignored_channel"
    IGNORED_NO_PROGRESS = "ignored_no_progress"
    IGNORED_NO_VALUE = "ignored_no_value"
    REJECTED_NO_CLAIM = "rejected_no_claim"
    REJECTED_OWNER_MISMATCH = "rejected_owner_mismatch"
    RECONCILED = "reconciled"


@dataclass(frozen=True, slots=True)
class OwnershipClaim:
    guild_id: int
    channel_id: int
    owner_id: int
    owner_name: str
    value: int
    report_message_id: int


@dataclass(slots=True)
class IngestionResult:
    status: IngestionStatus
    value: int | None = None
    claim: OwnershipClaim | None = None
    detail: str = ""
    outcome: Any = field(default=None, repr=False)

    @property
    def accepted(self) -> bool:
        return self.status is IngestionStatus.RECONCILED


class IngestionTrigger:
    def __init__(
        self,
        repository: RangeRepository,
        history: MessageHistoryProvider,
        *,
        reporting_bot_id: int,
        notify: Callable[[int, str], Awaitable[None]],
        reconcile: Callable[[OwnershipClaim], Awaitable[Any]],
        policy: OwnershipPolicy | None = None,
        progress_field_name: str = "PROGRESS",
        progress_label: str = "Time travels",
    ) -> None:
        self.repository = repository
        self.history = history
        self.reporting_bot_id = reporting_bot_id
        self.notify = notify
        self.reconcile = reconcile
        self.policy = policy or OwnershipPolicy()
        self.progress_field_name = progress_field_name
        self.progress_label = progress_label

    async def handle(self, report: InboundReport) -> IngestionResult:
        if (
            report.guild_id is None
            or not report.author_is_bot
            or report.author_id != self.reporting_bot_id
            or not report.embeds
        ):
            return IngestionResult(IngestionStatus.IGNORED_SOURCE)

        settings = await self.repository.get_settings(report.guild_id)
        if settings.verification_channel_id is None or settings.verification_channel_id != report.channel_id:
            logger.debug("Report %s ignored: not in the verification channel", report.message_id)
            return IngestionResult(IngestionStatus.IGNORED_CHANNEL)

        embed = report.embeds[0]
        if not any(name.strip() == self.progress_field_name for name, _ in embed.fields):
            logger.debug("Report %s ignored: no %s field", report.message_id, self.progress_field_name)
            return IngestionResult(IngestionStatus.IGNORED_NO_PROGRESS)

        value = parse_progress(embed, self.progress_field_name, self.progress_label)
        if value is None:
            logger.debug("Report %s ignored: no %s value", report.message_id, self.progress_label)
            return IngestionResult(IngestionStatus.IGNORED_NO_VALUE)

        logger.info("Extracted %s=%s from report %s", self.progress_label, value, report.message_id)

        history = await self.history.fetch_recent(report.channel_id, self.policy.lookback_limit)
        entry = self.policy.find_claim(history, report)
        if entry is None:
            logger.info(
                "Report %s rejected: no prior profile command in the last %s messages",
                report.message_id,
                self.policy.lookback_limit,
            )
            await self.notify(
                report.channel_id,
                f"{OWNER_ONLY_NOTICE}\nNo `{self.policy.trigger_phrases[0]}` command was found before this profile.",
            )
            return IngestionResult(IngestionStatus.REJECTED_NO_CLAIM, value=value, detail="no prior command")

        embed_name = self.policy.embed_owner_name(embed.author_name)
        if not self.policy.names_match(embed_name, entry):
            logger.info(
                "Profile mismatch on report %s: embed owner %r, command author %r",
                report.message_id,
                embed_name,
                entry.author_display_name,
            )
            await self.notify(
                report.channel_id,
                f"{OWNER_ONLY_NOTICE}\nThis profile does not belong to {entry.author_display_name}.",
            )
            return IngestionResult(IngestionStatus.REJECTED_OWNER_MISMATCH, value=value, detail="ownership mismatch")

        claim = OwnershipClaim(
            guild_id=report.guild_id,
            channel_id=report.channel_id,
            owner_id=entry.author_id,
            owner_name=entry.author_display_name,
            value=value,
            report_message_id=report.message_id,
        )
        logger.info("Processing time travel roles for %s (%s) value=%s", claim.owner_name, claim.owner_id, value)
        outcome = await self.reconcile(claim)
        return IngestionResult(IngestionStatus.RECONCILED, value=value, claim=claim, outcome=outcome)
