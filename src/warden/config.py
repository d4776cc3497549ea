from __future__ import annotations

import os
from dataclasses import dataclass


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _get_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


@dataclass(frozen=True)
class Settings:
    token: str
    # The one community this bot moderates.
    guild_id: int
    owner_id: int = 0
    # 0 syncs slash commands globally.
    sync_guild_id: int = 0
    sqlite_path: str = "warden.sqlite3"
    log_level: str = "INFO"

    mod_logs_channel_name: str = "mod-logs"
    bot_ops_channel_name: str = "admin-console"
    mute_role_name: str = "Muted"
    restrict_role_name: str = "Restricted"
    staff_role_names: tuple[str, ...] = ("Staff", "Moderator", "Admin", "Owner")

    # DM the target before the action is applied.
    dm_notify: bool = True
    # Upper bound on how long the expiry runner sleeps between checks.
    scheduler_max_sleep_seconds: int = 300


def load_settings() -> Settings:
    token = os.getenv("DISCORD_TOKEN", "").strip()
    if not token:
        raise RuntimeError("DISCORD_TOKEN is required")
    guild_id = _get_int("GUILD_ID", 0)
    if not guild_id:
        raise RuntimeError("GUILD_ID is required")
    staff_roles = tuple(r.strip() for r in _get_str("STAFF_ROLE_NAMES", "Staff,Moderator,Admin,Owner").split(",") if r.strip())
    return Settings(
        token=token,
        guild_id=guild_id,
        # Default to 0 to avoid accidentally granting owner powers to a random ID
        owner_id=_get_int("OWNER_ID", 0),
        sync_guild_id=_get_int("SYNC_GUILD_ID", 0),
        sqlite_path=_get_str("SQLITE_PATH", "warden.sqlite3"),
        log_level=_get_str("LOG_LEVEL", "INFO"),
        mod_logs_channel_name=_get_str("MOD_LOGS_CHANNEL_NAME", "mod-logs"),
        bot_ops_channel_name=_get_str("BOT_OPS_CHANNEL_NAME", "admin-console"),
        mute_role_name=_get_str("MUTE_ROLE_NAME", "Muted"),
        restrict_role_name=_get_str("RESTRICT_ROLE_NAME", "Restricted"),
        staff_role_names=staff_roles,
        dm_notify=_get_bool("DM_NOTIFY", True),
        scheduler_max_sleep_seconds=max(1, _get_int("SCHEDULER_MAX_SLEEP_SECONDS", 300)),
    )
