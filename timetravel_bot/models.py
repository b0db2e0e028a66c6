from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


DEFAULT_COMMAND_PREFIX = "ep"


@dataclass(frozen=True, slots=True)
class RoleRange:
    """A configured interval of progress values mapped to one role.

    ``max_value`` of ``None`` means the range is open-ended (``min+``).
    """

    guild_id: int
    min_value: int
    max_value: int | None
    role_id: int
    created_at: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if self.min_value < 0:
            raise ValueError("min_value must be >= 0")
        if self.max_value is not None and self.max_value < self.min_value:
            raise ValueError("max_value must be >= min_value")

    @property
    def is_open_ended(self) -> bool:
        return self.max_value is None

    def contains(self, value: int) -> bool:
        if value < self.min_value:
            return False
        return self.max_value is None or value <= self.max_value

    def describe(self) -> str:
        upper = "infinity" if self.max_value is None else str(self.max_value)
        return f"{self.min_value} - {upper}"


@dataclass(slots=True)
class GuildSettings:
    guild_id: int
    verification_channel_id: int | None = None
    command_prefix: str = DEFAULT_COMMAND_PREFIX


class OutcomeStatus(str, Enum):
    NO_MATCH = "no_match"
    ROLES_MISSING = "roles_missing"
    ALREADY_CORRECT = "already_correct"
    APPLIED = "applied"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


@dataclass(slots=True)
class ReconciliationOutcome:
    target_value: int
    matched_ranges: tuple[RoleRange, ...]
    resolved_roles: frozenset[int]
    conflicting_roles: frozenset[int]
    already_held: frozenset[int]
    to_add: frozenset[int]
    to_remove: frozenset[int]
    missing_roles: frozenset[int] = frozenset()
    roles_added: frozenset[int] = frozenset()
    roles_removed: frozenset[int] = frozenset()
    errors: list[str] = field(default_factory=list)
    status: OutcomeStatus = OutcomeStatus.NO_MATCH

    @property
    def already_correct(self) -> bool:
        """True when the member already holds exactly the resolved roles."""
        return not self.to_add and not self.to_remove

    @property
    def mutation_attempted(self) -> bool:
        return bool(self.roles_added or self.roles_removed or self.errors)

    @property
    def held_roles(self) -> frozenset[int]:
        """Resolved roles the member holds once this reconciliation has been applied."""
        return self.already_held | self.roles_added
