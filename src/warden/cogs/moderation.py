from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from ..moderation.duration import format_duration
from ..moderation.errors import ModerationError
from ..moderation.models import AuditEvent, ModerationAction, Subject
from ..moderation.notify import case_summary
from ..utils import error_embed, safe_response

log = logging.getLogger("warden.cogs.moderation")

DURATION_HELP = "e.g. 30m, 1h, 2d 12h, perm (default: permanent)"


def _subject(user: discord.abc.User) -> Subject:
    return Subject(id=user.id, label=getattr(user, "display_name", None) or user.name)


def _origin(interaction: discord.Interaction) -> Optional[str]:
    if interaction.guild_id is None or interaction.channel_id is None:
        return None
    return f"https://discord.com/channels/{interaction.guild_id}/{interaction.channel_id}"


class ModerationCog(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot  # type: ignore[assignment]

    @property
    def engine(self):
        return self.bot.engine  # type: ignore[attr-defined]

    async def _issue(
        self,
        interaction: discord.Interaction,
        kind: str,
        user: discord.User,
        duration: Optional[str],
        reason: Optional[str],
    ) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            action = await self.engine.issue(
                kind,
                _subject(user),
                _subject(interaction.user),
                duration=duration,
                reason=reason,
                origin_reference=_origin(interaction),
            )
        except ModerationError as e:
            await safe_response(interaction, embed=error_embed(str(e)), ephemeral=True)
            return
        verb = self.engine.kinds.get(kind).verb
        span = "" if action.duration is None else f" for {format_duration(action.duration)}"
        await safe_response(interaction, f"✅ {action.target_label} {verb}{span}. Case #{action.case_id}.", ephemeral=True)

    async def _revoke(self, interaction: discord.Interaction, kind: str, user: discord.User, reason: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            action = await self.engine.revoke(kind, _subject(user), _subject(interaction.user), reason=reason)
        except ModerationError as e:
            await safe_response(interaction, embed=error_embed(str(e)), ephemeral=True)
            return
        undo_verb = self.engine.kinds.get(kind).undo_verb
        await safe_response(interaction, f"✅ {action.target_label} {undo_verb}. Case #{action.case_id} closed.", ephemeral=True)

    @app_commands.command(name="ban", description="Ban a user, optionally for a limited time.")
    @app_commands.describe(duration=DURATION_HELP)
    @app_commands.checks.has_permissions(ban_members=True)
    async def ban(self, interaction: discord.Interaction, user: discord.User, duration: Optional[str] = None, reason: Optional[str] = None) -> None:
        await self._issue(interaction, "ban", user, duration, reason)

    @app_commands.command(name="unban", description="Lift a ban early.")
    @app_commands.checks.has_permissions(ban_members=True)
    async def unban(self, interaction: discord.Interaction, user: discord.User, reason: str) -> None:
        await self._revoke(interaction, "ban", user, reason)

    @app_commands.command(name="mute", description="Mute a member, optionally for a limited time.")
    @app_commands.describe(duration=DURATION_HELP)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def mute(self, interaction: discord.Interaction, user: discord.User, duration: Optional[str] = None, reason: Optional[str] = None) -> None:
        await self._issue(interaction, "mute", user, duration, reason)

    @app_commands.command(name="unmute", description="Lift a mute early.")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def unmute(self, interaction: discord.Interaction, user: discord.User, reason: str) -> None:
        await self._revoke(interaction, "mute", user, reason)

    @app_commands.command(name="restrict", description="Restrict a member, optionally for a limited time.")
    @app_commands.describe(duration=DURATION_HELP)
    @app_commands.checks.has_permissions(moderate_members=True)
    async def restrict(self, interaction: discord.Interaction, user: discord.User, duration: Optional[str] = None, reason: Optional[str] = None) -> None:
        await self._issue(interaction, "restrict", user, duration, reason)

    @app_commands.command(name="unrestrict", description="Lift a restriction early.")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def unrestrict(self, interaction: discord.Interaction, user: discord.User, reason: str) -> None:
        await self._revoke(interaction, "restrict", user, reason)

    @app_commands.command(name="expunge", description="Strike a case from the record, lifting it if still active.")
    @app_commands.checks.has_permissions(ban_members=True)
    async def expunge(self, interaction: discord.Interaction, case_id: app_commands.Range[int, 1], reason: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            action = await self.engine.expunge(int(case_id), _subject(interaction.user), reason=reason)
        except ModerationError as e:
            await safe_response(interaction, embed=error_embed(str(e)), ephemeral=True)
            return
        await safe_response(interaction, f"✅ Case #{action.case_id} expunged.", ephemeral=True)

    @app_commands.command(name="case", description="Show one moderation case.")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def case(self, interaction: discord.Interaction, case_id: app_commands.Range[int, 1]) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            action = await self.engine.get_case(int(case_id))
        except ModerationError as e:
            await safe_response(interaction, embed=error_embed(str(e)), ephemeral=True)
            return
        await safe_response(interaction, embed=case_summary(action, AuditEvent.ISSUED), ephemeral=True)

    @app_commands.command(name="cases", description="Show recent cases for a user.")
    @app_commands.checks.has_permissions(moderate_members=True)
    async def cases(self, interaction: discord.Interaction, user: discord.User) -> None:
        await interaction.response.defer(ephemeral=True)
        rows: list[ModerationAction] = await self.engine.history(user.id, limit=10)
        if not rows:
            await safe_response(interaction, "No cases.", ephemeral=True)
            return
        e = discord.Embed(title=f"Cases: {user}")
        for c in rows:
            e.add_field(
                name=f"#{c.case_id} • {c.kind} • {c.status}",
                value=f"{format_duration(c.duration)} — {(c.reason or '—')[:200]}",
                inline=False,
            )
        await safe_response(interaction, embed=e, ephemeral=True)

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        if member.guild.id != self.bot.settings.guild_id:  # type: ignore[attr-defined]
            return
        try:
            reapplied = await self.engine.reapply_for_target(member.id)
        except Exception:
            log.exception("Re-applying moderation for %d failed", member.id)
            return
        if reapplied:
            log.info("Re-applied %d action(s) to rejoining member %d", len(reapplied), member.id)
