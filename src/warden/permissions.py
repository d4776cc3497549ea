from __future__ import annotations

import logging
from typing import Iterable

import discord

log = logging.getLogger("warden.permissions")


def is_staff_member(member: discord.Member, staff_role_names: Iterable[str]) -> bool:
    """Check if a member is Staff/Moderator by role or by moderation permissions."""
    names = set(staff_role_names)
    has_staff_role = any(role.name in names for role in member.roles)
    perms = member.guild_permissions
    has_staff_perms = perms.administrator or perms.ban_members or perms.moderate_members or perms.manage_messages
    return has_staff_role or has_staff_perms


class ExemptionPolicy:
    """Decides which accounts moderation actions may not target."""

    def __init__(self, bot: discord.Client, *, guild_id: int, owner_id: int, staff_role_names: Iterable[str]) -> None:
        self._bot = bot
        self._guild_id = guild_id
        self._owner_id = owner_id
        self._staff_role_names = tuple(staff_role_names)

    async def __call__(self, user_id: int) -> bool:
        if self._owner_id and user_id == self._owner_id:
            return True
        if self._bot.user is not None and user_id == self._bot.user.id:
            return True
        guild = self._bot.get_guild(self._guild_id)
        if guild is None:
            return False
        if user_id == guild.owner_id:
            return True
        member = guild.get_member(user_id)
        if member is None:
            # Not a member: no staff roles to protect.
            return False
        exempt = is_staff_member(member, self._staff_role_names)
        if exempt:
            log.info("Refusing moderation against staff member %d", user_id)
        return exempt
