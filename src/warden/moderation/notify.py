from __future__ import annotations

import logging
from typing import Optional, Protocol, Union

import discord

from ..constants import CASE_COLORS, COLORS, MAX_FIELD_VALUE
from ..utils import find_text_channel_fuzzy, truncate_text
from .duration import format_duration
from .models import ActionDraft, AuditEvent, ModerationAction

log = logging.getLogger("warden.moderation.notify")


class ModerationNotifier(Protocol):
    """Outbound side effects of the lifecycle. All of them are best-effort."""

    async def notify_target(self, draft: ActionDraft, verb: str) -> None:
        ...

    async def post_audit(self, event: AuditEvent, action: ModerationAction, note: Optional[str] = None) -> None:
        ...

    async def report_critical(self, message: str, error: Optional[BaseException] = None) -> None:
        ...


_TITLES = {
    AuditEvent.ISSUED: "{verb}",
    AuditEvent.REVOKED: "{undo}",
    AuditEvent.EXPIRED: "{undo} (expired)",
    AuditEvent.EXPUNGED: "Expunged",
    AuditEvent.ENFORCEMENT_FAILED: "Removal failed",
    AuditEvent.MISMATCH: "Record/enforcement mismatch",
    AuditEvent.REAPPLIED: "{verb} (re-applied on rejoin)",
}


def case_summary(
    action: ModerationAction,
    event: AuditEvent,
    *,
    verb: str = "",
    undo_verb: str = "",
    note: Optional[str] = None,
) -> discord.Embed:
    title = _TITLES[event].format(verb=(verb or action.kind).capitalize(), undo=(undo_verb or action.kind).capitalize())
    e = discord.Embed(title=f"Case {action.case_id}: {title}", color=CASE_COLORS.get(event.value, COLORS["default"]))
    e.add_field(name="User", value=f"{action.target_label} (<@{action.target_id}>)", inline=False)
    e.add_field(name="Moderator", value=f"{action.operator_label} (<@{action.operator_id}>)", inline=False)
    e.add_field(name="Duration", value=format_duration(action.duration), inline=True)
    e.add_field(name="Status", value=action.status, inline=True)
    e.add_field(name="Reason", value=truncate_text(action.reason or "—", MAX_FIELD_VALUE), inline=False)
    ended = action.removed or action.expunged
    if ended is not None:
        e.add_field(
            name="Ended by",
            value=truncate_text(f"{ended.operator_label}: {ended.reason or '—'}", MAX_FIELD_VALUE),
            inline=False,
        )
    if note:
        e.add_field(name="Note", value=truncate_text(note, MAX_FIELD_VALUE), inline=False)
    if action.origin_reference:
        e.add_field(name="Context", value=action.origin_reference, inline=False)
    e.timestamp = discord.utils.utcnow()
    return e


class DiscordNotifier:
    """Delivers DMs, mod-log embeds and critical reports through the bot."""

    def __init__(
        self,
        bot: discord.Client,
        *,
        guild_id: int,
        mod_logs_channel_name: str,
        bot_ops_channel_name: str,
        dm_notify: bool = True,
        verbs: Optional[dict[str, tuple[str, str]]] = None,
    ) -> None:
        self._bot = bot
        self._guild_id = guild_id
        self._mod_logs_channel_name = mod_logs_channel_name
        self._bot_ops_channel_name = bot_ops_channel_name
        self._dm_notify = dm_notify
        self._verbs = verbs or {}

    def _channel(self, name: str) -> Optional[discord.TextChannel]:
        guild = self._bot.get_guild(self._guild_id)
        if guild is None:
            return None
        return find_text_channel_fuzzy(guild, name)

    async def _user(self, user_id: int) -> Union[discord.User, discord.Member]:
        user = self._bot.get_user(user_id)
        if user is not None:
            return user
        return await self._bot.fetch_user(user_id)

    async def notify_target(self, draft: ActionDraft, verb: str) -> None:
        if not self._dm_notify:
            return
        guild = self._bot.get_guild(self._guild_id)
        where = guild.name if guild else "the server"
        span = "" if draft.duration is None else f" for {format_duration(draft.duration)}"
        text = f"You have been {verb} in **{where}**{span}. Reason: {draft.reason or '—'}"
        user = await self._user(draft.target_id)
        await user.send(truncate_text(text))

    async def post_audit(self, event: AuditEvent, action: ModerationAction, note: Optional[str] = None) -> None:
        channel = self._channel(self._mod_logs_channel_name)
        if channel is None:
            log.warning("Mod log channel %r not found; case #%d %s not posted", self._mod_logs_channel_name, action.case_id, event.value)
            return
        verb, undo_verb = self._verbs.get(action.kind, ("", ""))
        await channel.send(embed=case_summary(action, event, verb=verb, undo_verb=undo_verb, note=note))

    async def report_critical(self, message: str, error: Optional[BaseException] = None) -> None:
        channel = self._channel(self._bot_ops_channel_name)
        if channel is None:
            log.error("Critical (no %r channel): %s", self._bot_ops_channel_name, message)
            return
        detail = f"\n`{type(error).__name__}: {error}`" if error is not None else ""
        await channel.send(truncate_text(f"🛑 {message}{detail}"))
