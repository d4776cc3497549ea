from __future__ import annotations

import logging
from typing import Any

import discord

from .constants import COLORS, MAX_EMBED_DESCRIPTION, MAX_EMBED_TITLE, MAX_MESSAGE_LENGTH

log = logging.getLogger("warden.utils")


def safe_embed(title: str, description: str, color: int = COLORS["default"]) -> discord.Embed:
    """Create an embed with safe length limits."""
    if len(title) > MAX_EMBED_TITLE:
        title = title[:MAX_EMBED_TITLE - 3] + "…"
    if len(description) > MAX_EMBED_DESCRIPTION:
        description = description[:MAX_EMBED_DESCRIPTION - 3] + "…"

    return discord.Embed(title=title, description=description, color=color)


def error_embed(message: str) -> discord.Embed:
    return safe_embed("Error", message, COLORS["error"])


async def safe_response(
    interaction: discord.Interaction,
    content: str | None = None,
    embed: discord.Embed | None = None,
    ephemeral: bool = False,
    **kwargs: Any,
) -> bool:
    """Respond to an interaction, falling back to a followup once it was deferred."""
    try:
        if interaction.response.is_done():
            await interaction.followup.send(content=content, embed=embed, ephemeral=ephemeral, **kwargs)
        else:
            await interaction.response.send_message(content=content, embed=embed, ephemeral=ephemeral, **kwargs)
        return True
    except discord.HTTPException as e:
        log.error("Failed to send response: %s", e)
        return False


def truncate_text(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "…"


def normalize_display_name(name: str) -> str:
    """Normalize Discord display names for fuzzy matching.

    - strips surrounding whitespace
    - removes leading emoji-like prefixes commonly used in role names
    - casefolds for case-insensitive comparison
    """

    n = name.strip()
    parts = n.split(maxsplit=1)
    if len(parts) == 2:
        head, tail = parts
        if not head.isalnum():
            n = tail
    return n.strip().casefold()


def find_role_fuzzy(guild: discord.Guild, expected_name: str) -> discord.Role | None:
    """Find a role by exact name or emoji-prefixed variant."""

    role = discord.utils.get(guild.roles, name=expected_name)
    if role:
        return role
    target = normalize_display_name(expected_name)
    for r in guild.roles:
        if normalize_display_name(r.name) == target:
            return r
    return None


def find_text_channel_fuzzy(guild: discord.Guild, expected_name: str) -> discord.TextChannel | None:
    """Find a text channel by exact name or emoji-prefixed variant."""

    ch = discord.utils.get(guild.text_channels, name=expected_name)
    if ch:
        return ch
    target = normalize_display_name(expected_name)
    for c in guild.text_channels:
        if normalize_display_name(c.name) == target:
            return c
    return None
