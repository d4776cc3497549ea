from __future__ import annotations

from typing import Final

# Discord limits
MAX_MESSAGE_LENGTH: Final[int] = 2000
MAX_EMBED_DESCRIPTION: Final[int] = 4096
MAX_EMBED_TITLE: Final[int] = 256
MAX_FIELD_VALUE: Final[int] = 1024

# Colors (hex values)
COLORS = {
    "default": 0x5865F2,
    "success": 0x57F287,
    "warning": 0xF1C40F,
    "error": 0xED4245,
    "info": 0x3498DB,
    "muted": 0x4F545C,
}

# Embed colors per lifecycle event
CASE_COLORS = {
    "issued": COLORS["error"],
    "revoked": COLORS["success"],
    "expired": COLORS["info"],
    "expunged": COLORS["muted"],
    "enforcement_failed": COLORS["warning"],
    "mismatch": COLORS["warning"],
    "reapplied": COLORS["default"],
}

ERROR_MESSAGES = {
    "missing_permissions": "You don't have permission to use this command.",
    "bot_missing_permissions": "The bot lacks required permissions to run this command.",
    "unexpected": "Something went wrong running that command.",
    "guild_only": "This command can only be used in the server.",
}
