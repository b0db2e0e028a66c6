from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import timetravel_bot.config as config_mod  # noqa: E402
from timetravel_bot.config import EPIC_RPG_BOT_ID, Settings  # noqa: E402
from timetravel_bot.storage import PostgresRangeStore, RangeStore, build_range_store  # noqa: E402


_KEYS = (
    "DISCORD_TOKEN",
    "DISCORD_BOT_TOKEN",
    "DEFAULT_COMMAND_PREFIX",
    "REPORTING_BOT_ID",
    "EPIC_RPG_BOT_ID",
    "OWNERSHIP_TRIGGER_PHRASES",
    "OWNERSHIP_LOOKBACK_MESSAGES",
    "OWNERSHIP_MAX_AGE_SECONDS",
    "UNDO_TTL_SECONDS",
    "STORAGE_BACKEND",
    "SQLITE_PATH",
    "POSTGRES_DSN",
    "DATABASE_URL",
)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for key in _KEYS:
        monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv(f"\ufeff{key}", raising=False)
    return monkeypatch


def test_defaults_follow_the_epic_rpg_flow(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DISCORD_TOKEN", "abc")

    settings = Settings.from_env()
    settings.validate()

    assert settings.reporting_bot_id == EPIC_RPG_BOT_ID
    assert settings.default_command_prefix == "ep"
    assert settings.ownership_trigger_phrases == ("rpg p", "rpg profile")
    assert settings.ownership_lookback_messages == 50
    assert settings.undo_ttl_seconds == 300
    assert settings.storage_backend == "sqlite"


def test_token_is_cleaned_and_bom_keys_are_tolerated(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("\ufeffDISCORD_TOKEN", ' "secret-token" ')
    assert Settings.from_env().discord_token == "secret-token"

    clean_env.setenv("\ufeffDISCORD_TOKEN", "Bot other-token")
    assert Settings.from_env().discord_token == "other-token"


def test_lists_and_ints_parse_from_env(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DISCORD_TOKEN", "abc")
    clean_env.setenv("OWNERSHIP_TRIGGER_PHRASES", "rpg p, rpg profile ,rpg pro")
    clean_env.setenv("OWNERSHIP_LOOKBACK_MESSAGES", "10")
    clean_env.setenv("OWNERSHIP_MAX_AGE_SECONDS", "not-a-number")

    settings = Settings.from_env()
    policy = settings.ownership_policy()

    assert settings.ownership_trigger_phrases == ("rpg p", "rpg profile", "rpg pro")
    assert policy.lookback_limit == 10
    assert policy.max_age_seconds is None


@pytest.mark.parametrize(
    "key, value",
    [
        ("DISCORD_TOKEN", ""),
        ("OWNERSHIP_LOOKBACK_MESSAGES", "0"),
        ("OWNERSHIP_LOOKBACK_MESSAGES", "101"),
        ("UNDO_TTL_SECONDS", "5"),
        ("STORAGE_BACKEND", "mongo"),
        ("DEFAULT_COMMAND_PREFIX", "e p"),
    ],
)
def test_validate_rejects_bad_values(clean_env: pytest.MonkeyPatch, key: str, value: str) -> None:
    clean_env.setenv("DISCORD_TOKEN", "abc")
    clean_env.setenv(key, value)

    with pytest.raises(ValueError):
        Settings.from_env().validate()


def test_postgres_backend_requires_dsn(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DISCORD_TOKEN", "abc")
    clean_env.setenv("STORAGE_BACKEND", "postgres")

    with pytest.raises(ValueError, match="POSTGRES_DSN"):
        Settings.from_env().validate()


def test_store_factory_picks_backend(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("DISCORD_TOKEN", "abc")
    clean_env.setenv("SQLITE_PATH", str(tmp_path / "roles.db"))
    assert isinstance(build_range_store(Settings.from_env()), RangeStore)

    clean_env.setenv("STORAGE_BACKEND", "postgres")
    clean_env.setenv("POSTGRES_DSN", "postgresql://bot@localhost/timetravel")
    store = build_range_store(Settings.from_env())
    assert isinstance(store, PostgresRangeStore)
    assert store.backend_name == "postgres"


def test_env_helpers_fall_back_on_garbage(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("UNDO_TTL_SECONDS", "soon")

    assert config_mod._env_int("UNDO_TTL_SECONDS", 300) == 300
    assert config_mod._env_bool("MISSING_FLAG_FOR_TEST", True) is True
