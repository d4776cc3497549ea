from __future__ import annotations

import pytest

from warden.config import load_settings

_VARS = (
    "DISCORD_TOKEN",
    "GUILD_ID",
    "OWNER_ID",
    "SYNC_GUILD_ID",
    "SQLITE_PATH",
    "LOG_LEVEL",
    "MOD_LOGS_CHANNEL_NAME",
    "BOT_OPS_CHANNEL_NAME",
    "MUTE_ROLE_NAME",
    "RESTRICT_ROLE_NAME",
    "DM_NOTIFY",
    "SCHEDULER_MAX_SLEEP_SECONDS",
    "STAFF_ROLE_NAMES",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


def test_token_is_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GUILD_ID", "42")

    with pytest.raises(RuntimeError, match="DISCORD_TOKEN"):
        load_settings()


def test_guild_is_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "t")
    monkeypatch.setenv("GUILD_ID", "not-a-number")

    with pytest.raises(RuntimeError, match="GUILD_ID"):
        load_settings()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "t")
    monkeypatch.setenv("GUILD_ID", "42")

    settings = load_settings()

    assert settings.guild_id == 42
    assert settings.owner_id == 0
    assert settings.sqlite_path == "warden.sqlite3"
    assert settings.mute_role_name == "Muted"
    assert settings.dm_notify is True
    assert settings.scheduler_max_sleep_seconds == 300
    assert settings.staff_role_names == ("Staff", "Moderator", "Admin", "Owner")


def test_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", " t ")
    monkeypatch.setenv("GUILD_ID", "42")
    monkeypatch.setenv("OWNER_ID", "7")
    monkeypatch.setenv("DM_NOTIFY", "off")
    monkeypatch.setenv("SCHEDULER_MAX_SLEEP_SECONDS", "0")
    monkeypatch.setenv("STAFF_ROLE_NAMES", "Mods, Helpers ,,")
    monkeypatch.setenv("MOD_LOGS_CHANNEL_NAME", "case-log")

    settings = load_settings()

    assert settings.token == "t"
    assert settings.owner_id == 7
    assert settings.dm_notify is False
    assert settings.scheduler_max_sleep_seconds == 1
    assert settings.staff_role_names == ("Mods", "Helpers")
    assert settings.mod_logs_channel_name == "case-log"
