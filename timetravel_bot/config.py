from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .ingestion import OwnershipPolicy


load_dotenv()

EPIC_RPG_BOT_ID = 555955826880413696


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _env_list(name: str, default: tuple[str, ...], aliases: tuple[str, ...] = ()) -> tuple[str, ...]:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    items = tuple(chunk.strip() for chunk in raw.split(",") if chunk.strip())
    return items or default


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


@dataclass(slots=True)
class Settings:
    discord_token: str
    default_command_prefix: str
    command_namespace: str
    discord_members_intent: bool
    discord_message_content_intent: bool
    log_level: str

    reporting_bot_id: int
    progress_field_name: str
    progress_label: str

    ownership_trigger_phrases: tuple[str, ...]
    ownership_lookback_messages: int
    ownership_max_age_seconds: int
    ownership_case_sensitive: bool
    ownership_name_delimiter: str

    undo_ttl_seconds: int

    storage_backend: str
    sqlite_path: Path
    postgres_dsn: str

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN", aliases=("DISCORD_BOT_TOKEN",)) or ""),
            default_command_prefix=_env_str("DEFAULT_COMMAND_PREFIX", "ep"),
            command_namespace=_env_str("COMMAND_NAMESPACE", "tt"),
            discord_members_intent=_env_bool("DISCORD_MEMBERS_INTENT", True),
            discord_message_content_intent=_env_bool("DISCORD_MESSAGE_CONTENT_INTENT", True),
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
            reporting_bot_id=_env_int("REPORTING_BOT_ID", EPIC_RPG_BOT_ID, aliases=("EPIC_RPG_BOT_ID",)),
            progress_field_name=_env_str("PROGRESS_FIELD_NAME", "PROGRESS"),
            progress_label=_env_str("PROGRESS_LABEL", "Time travels"),
            ownership_trigger_phrases=_env_list("OWNERSHIP_TRIGGER_PHRASES", ("rpg p", "rpg profile")),
            ownership_lookback_messages=_env_int("OWNERSHIP_LOOKBACK_MESSAGES", 50),
            ownership_max_age_seconds=_env_int("OWNERSHIP_MAX_AGE_SECONDS", 0),
            ownership_case_sensitive=_env_bool("OWNERSHIP_CASE_SENSITIVE", False),
            # Delimiters are often surrounded by spaces, so this one is not stripped.
            ownership_name_delimiter=_env_lookup("OWNERSHIP_NAME_DELIMITER") or " — ",
            undo_ttl_seconds=_env_int("UNDO_TTL_SECONDS", 300),
            storage_backend=_env_str("STORAGE_BACKEND", "sqlite").lower(),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/timetravel_roles.db")).expanduser(),
            postgres_dsn=_env_str("POSTGRES_DSN", "", aliases=("DATABASE_URL",)),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")
        if not self.default_command_prefix.strip() or any(ch.isspace() for ch in self.default_command_prefix):
            raise ValueError("DEFAULT_COMMAND_PREFIX must be a non-empty word")
        if not self.command_namespace.strip() or any(ch.isspace() for ch in self.command_namespace):
            raise ValueError("COMMAND_NAMESPACE must be a non-empty word")

        if not self.progress_field_name:
            raise ValueError("PROGRESS_FIELD_NAME cannot be empty")
        if not self.progress_label:
            raise ValueError("PROGRESS_LABEL cannot be empty")

        if not self.ownership_trigger_phrases:
            raise ValueError("OWNERSHIP_TRIGGER_PHRASES must list at least one phrase")
        if self.ownership_lookback_messages < 1 or self.ownership_lookback_messages > 100:
            raise ValueError("OWNERSHIP_LOOKBACK_MESSAGES must be in [1, 100]")
        if self.ownership_max_age_seconds < 0:
            raise ValueError("OWNERSHIP_MAX_AGE_SECONDS must be >= 0 (0 disables the age limit)")
        if not self.ownership_name_delimiter:
            raise ValueError("OWNERSHIP_NAME_DELIMITER cannot be empty")

        if self.undo_ttl_seconds < 10:
            raise ValueError("UNDO_TTL_SECONDS must be >= 10")

        if self.storage_backend not in {"sqlite", "postgres"}:
            raise ValueError("STORAGE_BACKEND must be 'sqlite' or 'postgres'")
        if self.storage_backend == "postgres" and not self.postgres_dsn:
            raise ValueError("POSTGRES_DSN is required when STORAGE_BACKEND=postgres")

    def ownership_policy(self) -> OwnershipPolicy:
        return OwnershipPolicy(
            trigger_phrases=self.ownership_trigger_phrases,
            lookback_limit=self.ownership_lookback_messages,
            max_age_seconds=self.ownership_max_age_seconds or None,
            case_sensitive=self.ownership_case_sensitive,
            name_delimiter=self.ownership_name_delimiter,
        )
