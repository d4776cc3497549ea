from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from .constants import ERROR_MESSAGES
from .moderation.errors import ModerationError
from .utils import error_embed, safe_response

log = logging.getLogger("warden.error_handlers")


async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError) -> None:
    """Centralized handling for slash command errors."""
    if isinstance(error, app_commands.CommandInvokeError) and isinstance(error.original, ModerationError):
        await safe_response(interaction, embed=error_embed(str(error.original)), ephemeral=True)
        return

    if isinstance(error, app_commands.MissingPermissions):
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["missing_permissions"]), ephemeral=True)
        return

    if isinstance(error, app_commands.BotMissingPermissions):
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["bot_missing_permissions"]), ephemeral=True)
        return

    if isinstance(error, app_commands.NoPrivateMessage):
        await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["guild_only"]), ephemeral=True)
        return

    if isinstance(error, app_commands.CommandOnCooldown):
        await safe_response(
            interaction,
            embed=error_embed(f"This command is on cooldown. Try again in {error.retry_after:.1f}s"),
            ephemeral=True,
        )
        return

    # Log unexpected errors; the user only sees a generic message.
    log.error("Unexpected error in app command %s", interaction.command.name if interaction.command else "?", exc_info=error)
    await safe_response(interaction, embed=error_embed(ERROR_MESSAGES["unexpected"]), ephemeral=True)


def setup_error_handlers(bot: commands.Bot) -> None:
    bot.tree.on_error = on_app_command_error  # type: ignore[method-assign]
