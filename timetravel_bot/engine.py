from __future__ import annotations

import logging
from typing import Iterable

from .errors import RoleMutationError
from .models import OutcomeStatus, ReconciliationOutcome, RoleRange
from .ports import MemberRoleProvider

logger = logging.getLogger("timetravel_bot")


def match_ranges(ranges: Iterable[RoleRange], value: int) -> tuple[RoleRange, ...]:
    return tuple(item for item in ranges if item.contains(value))


def reconcile(
    all_ranges: Iterable[RoleRange],
    current_member_role_ids: Iterable[int],
    existing_guild_role_ids: Iterable[int],
    target_value: int,
) -> ReconciliationOutcome:
    """Compute the role delta for a member whose progress is ``target_value``.

    Pure function: nothing is mutated. Every configured role that does not
    match the value and is currently held ends up in ``to_remove``; matched
    roles that still exist in the guild and are not held end up in ``to_add``.
    Overlapping ranges may resolve to several roles at once.
    """
    ranges = tuple(all_ranges)
    current = frozenset(current_member_role_ids)
    existing = frozenset(existing_guild_role_ids)

    matched = match_ranges(ranges, target_value)
    matched_role_ids = frozenset(item.role_id for item in matched)
    resolved = matched_role_ids & existing
    missing = matched_role_ids - existing

    configured = frozenset(item.role_id for item in ranges)
    conflicting = (configured - resolved) & existing & current

    already_held = resolved & current
    to_add = resolved - current
    to_remove = conflicting

    # NO_MATCH and ROLES_MISSING may still carry stale roles in to_remove.
    if not matched:
        status = OutcomeStatus.NO_MATCH
    elif not resolved:
        status = OutcomeStatus.ROLES_MISSING
    elif not to_add and not to_remove:
        status = OutcomeStatus.ALREADY_CORRECT
    else:
        status = OutcomeStatus.APPLIED

    return ReconciliationOutcome(
        target_value=target_value,
        matched_ranges=matched,
        resolved_roles=resolved,
        conflicting_roles=conflicting,
        already_held=already_held,
        to_add=to_add,
        to_remove=to_remove,
        missing_roles=missing,
        status=status,
    )


class RoleReconciler:
    """Plans a member's delta with :func:`reconcile` and issues it."""

    def __init__(self, roles: MemberRoleProvider) -> None:
        self.roles = roles

    async def run(
        self,
        guild_id: int,
        member_id: int,
        all_ranges: Iterable[RoleRange],
        target_value: int,
    ) -> ReconciliationOutcome:
        current = await self.roles.get_current_roles(member_id)
        existing = await self.roles.list_guild_role_ids(guild_id)
        outcome = reconcile(all_ranges, current, existing, target_value)

        if outcome.missing_roles:
            logger.warning(
                "Configured roles missing from guild=%s: %s",
                guild_id,
                ", ".join(str(role_id) for role_id in sorted(outcome.missing_roles)),
            )
        if outcome.already_correct:
            logger.info(
                "No role changes for member=%s guild=%s value=%s (%s)",
                member_id,
                guild_id,
                target_value,
                outcome.status.value,
            )
            return outcome

        await self.apply(member_id, outcome)
        return outcome

    async def apply(self, member_id: int, outcome: ReconciliationOutcome) -> None:
        # Removal goes first so a member never briefly holds two tiers.
        attempted = 0
        succeeded = 0
        if outcome.to_remove:
            attempted += 1
            try:
                await self.roles.remove_roles(member_id, sorted(outcome.to_remove))
            except RoleMutationError as exc:
                logger.error("Failed to remove roles from member=%s: %s", member_id, exc)
                outcome.errors.append(f"Could not remove roles: {exc}")
            else:
                succeeded += 1
                outcome.roles_removed = outcome.to_remove
                logger.info(
                    "Removed conflicting roles from member=%s: %s",
                    member_id,
                    ", ".join(str(role_id) for role_id in sorted(outcome.to_remove)),
                )

        if outcome.to_add:
            attempted += 1
            try:
                await self.roles.add_roles(member_id, sorted(outcome.to_add))
            except RoleMutationError as exc:
                logger.error("Failed to add roles to member=%s: %s", member_id, exc)
                outcome.errors.append(f"Could not add roles: {exc}")
            else:
                succeeded += 1
                outcome.roles_added = outcome.to_add
                logger.info(
                    "Assigned roles to member=%s: %s",
                    member_id,
                    ", ".join(str(role_id) for role_id in sorted(outcome.to_add)),
                )

        # On full success the planned status (APPLIED, NO_MATCH, ROLES_MISSING) stands.
        if succeeded == 0:
            outcome.status = OutcomeStatus.FAILED
        elif succeeded < attempted:
            outcome.status = OutcomeStatus.PARTIAL_FAILURE
