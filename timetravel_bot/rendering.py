from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .models import GuildSettings, OutcomeStatus, ReconciliationOutcome, RoleRange


@dataclass(slots=True)
class Card:
    """Platform-neutral description of an embed."""

    title: str
    description: str = ""
    colour: str = "blue"
    fields: list[tuple[str, str]] = field(default_factory=list)
    footer: str = ""

    def add_field(self, name: str, value: str) -> "Card":
        self.fields.append((name, value))
        return self


def role_mention(role_id: int) -> str:
    return f"<@&{role_id}>"


def channel_mention(channel_id: int) -> str:
    return f"<#{channel_id}>"


def _mentions(role_ids: Iterable[int]) -> str:
    return "\n".join(role_mention(role_id) for role_id in sorted(role_ids))


def outcome_description(outcome: ReconciliationOutcome) -> str:
    count = outcome.target_value
    status = outcome.status
    if status is OutcomeStatus.NO_MATCH:
        return f"No roles configured for time travel count: **{count}**."
    if status is OutcomeStatus.ROLES_MISSING:
        return "Configured roles not found in the guild."
    if status is OutcomeStatus.ALREADY_CORRECT:
        return f"All configured roles are already assigned for time travel count: **{count}**."
    if status is OutcomeStatus.APPLIED:
        return f"Assigned the following roles for time travel count: **{count}**."
    if status is OutcomeStatus.PARTIAL_FAILURE:
        return (
            f"Roles for time travel count **{count}** were only partly updated. "
            "Some of your roles may be missing, ask a moderator to check them."
        )
    return f"Could not update roles for time travel count: **{count}**."


def outcome_card(outcome: ReconciliationOutcome, member_label: str) -> Card:
    held = outcome.held_roles
    card = Card(
        title="Time Travel Role Assignment",
        description=outcome_description(outcome),
        colour="green" if held else "red",
        footer=f"User Roles Added To: {member_label}",
    )
    card.add_field("Next Steps", "Get additional roles in your server's self roles channel")
    if held:
        card.add_field("Roles", _mentions(held))
    if outcome.roles_removed:
        card.add_field("Removed", _mentions(outcome.roles_removed))
    if outcome.missing_roles and outcome.status is not OutcomeStatus.ROLES_MISSING:
        card.add_field("Missing", "Some configured roles no longer exist in this server.")
    if outcome.errors:
        card.add_field("Errors", "\n".join(outcome.errors))
    return card


def help_card(prefix: str, namespace: str = "tt") -> Card:
    base = f"{prefix} {namespace}"
    card = Card(
        title="Time Travel Bot Commands",
        description="Here are the available commands for the Time Travel Bot:",
        footer="Use the commands to configure roles and channels for time travel tracking.",
    )
    card.add_field("Set Role", f"`{base} setrole <min> <max> <role_id>`\n`{base} setrole <min>+ <role_id>`")
    card.add_field("Delete Role Mapping", f"`{base} delrole <role_id>`")
    card.add_field("Set Verification Channel", f"`{base} setchannel`")
    card.add_field("Set Command Prefix", f"`{base} setprefix <new_prefix>`")
    card.add_field("View Configuration", f"`{base} config`")
    return card


def config_card(settings: GuildSettings, ranges: Sequence[RoleRange]) -> Card:
    channel = (
        channel_mention(settings.verification_channel_id)
        if settings.verification_channel_id is not None
        else "Not Set"
    )
    if ranges:
        ordered = sorted(ranges, key=lambda item: (item.min_value, item.role_id))
        mappings = "\n".join(f"Role {role_mention(item.role_id)}: {item.describe()}" for item in ordered)
    else:
        mappings = "No roles configured."
    card = Card(title="Server Configuration")
    card.add_field("Verification Channel", channel)
    card.add_field("Command Prefix", f"`{settings.command_prefix}`")
    card.add_field("Role Mappings", mappings)
    return card
