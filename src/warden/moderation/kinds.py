from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, Optional, Protocol, runtime_checkable

import discord

from ..utils import find_role_fuzzy
from .errors import BackendError, UnknownKind

log = logging.getLogger("warden.moderation.kinds")

GuildResolver = Callable[[], Optional[discord.Guild]]


@runtime_checkable
class EnforcementBackend(Protocol):
    """Platform-side half of one action kind.

    ``apply``/``remove``/``is_applied`` raise ``BackendError`` when the
    platform call fails. "Not found" while checking is an answer, not a
    failure: ``is_applied`` returns False.
    """

    kind: str
    verb: str
    undo_verb: str
    reapply_on_rejoin: bool

    async def apply(self, target_id: int, reason: Optional[str]) -> None:
        ...

    async def remove(self, target_id: int, reason: Optional[str]) -> None:
        ...

    async def is_applied(self, target_id: int) -> bool:
        ...


class _GuildBackend:
    def __init__(self, resolve_guild: GuildResolver) -> None:
        self._resolve_guild = resolve_guild

    def _guild(self) -> discord.Guild:
        guild = self._resolve_guild()
        if guild is None:
            raise BackendError("Guild is not available")
        return guild


class BanBackend(_GuildBackend):
    kind = "ban"
    verb = "banned"
    undo_verb = "unbanned"
    reapply_on_rejoin = False

    async def apply(self, target_id: int, reason: Optional[str]) -> None:
        guild = self._guild()
        log.info("Banning %d", target_id)
        try:
            await guild.ban(discord.Object(id=target_id), reason=reason, delete_message_seconds=0)
        except discord.HTTPException as e:
            raise BackendError(f"ban failed: {e}") from e

    async def remove(self, target_id: int, reason: Optional[str]) -> None:
        guild = self._guild()
        log.info("Unbanning %d", target_id)
        try:
            await guild.unban(discord.Object(id=target_id), reason=reason)
        except discord.HTTPException as e:
            raise BackendError(f"unban failed: {e}") from e

    async def is_applied(self, target_id: int) -> bool:
        guild = self._guild()
        try:
            await guild.fetch_ban(discord.Object(id=target_id))
            return True
        except discord.NotFound:
            return False
        except discord.HTTPException as e:
            raise BackendError(f"ban lookup failed: {e}") from e


class RoleBackend(_GuildBackend):
    """A kind enforced by holding a named role (mute, restrict, ...)."""

    reapply_on_rejoin = True

    def __init__(self, kind: str, role_name: str, verb: str, undo_verb: str, resolve_guild: GuildResolver) -> None:
        super().__init__(resolve_guild)
        self.kind = kind
        self.role_name = role_name
        self.verb = verb
        self.undo_verb = undo_verb

    def _role(self, guild: discord.Guild) -> discord.Role:
        role = find_role_fuzzy(guild, self.role_name)
        if role is None:
            raise BackendError(f"Role '{self.role_name}' not found")
        return role

    async def _member(self, guild: discord.Guild, target_id: int) -> Optional[discord.Member]:
        member = guild.get_member(target_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(target_id)
        except discord.NotFound:
            return None
        except discord.HTTPException as e:
            raise BackendError(f"member lookup failed: {e}") from e

    async def apply(self, target_id: int, reason: Optional[str]) -> None:
        guild = self._guild()
        role = self._role(guild)
        member = await self._member(guild, target_id)
        if member is None:
            raise BackendError("Member is not in the server")
        log.info("Adding %s role to %d", self.role_name, target_id)
        try:
            await member.add_roles(role, reason=reason)
        except discord.HTTPException as e:
            raise BackendError(f"{self.kind} failed: {e}") from e

    async def remove(self, target_id: int, reason: Optional[str]) -> None:
        guild = self._guild()
        role = self._role(guild)
        member = await self._member(guild, target_id)
        if member is None:
            # Left the server; the role is gone with the membership.
            log.info("Member %d left; nothing to remove for %s", target_id, self.kind)
            return
        log.info("Removing %s role from %d", self.role_name, target_id)
        try:
            await member.remove_roles(role, reason=reason)
        except discord.HTTPException as e:
            raise BackendError(f"{self.kind} removal failed: {e}") from e

    async def is_applied(self, target_id: int) -> bool:
        guild = self._guild()
        role = find_role_fuzzy(guild, self.role_name)
        if role is None:
            return False
        member = await self._member(guild, target_id)
        if member is None:
            return False
        return any(r.id == role.id for r in member.roles)


class ActionKinds:
    """Registry of the enforcement backends, keyed by kind tag."""

    def __init__(self, backends: Iterable[EnforcementBackend]) -> None:
        self._backends: dict[str, EnforcementBackend] = {}
        for backend in backends:
            if backend.kind in self._backends:
                raise ValueError(f"duplicate moderation kind: {backend.kind}")
            self._backends[backend.kind] = backend

    def get(self, kind: str) -> EnforcementBackend:
        try:
            return self._backends[kind]
        except KeyError:
            raise UnknownKind(kind) from None

    def __contains__(self, kind: object) -> bool:
        return kind in self._backends

    def __iter__(self) -> Iterator[EnforcementBackend]:
        return iter(self._backends.values())

    def names(self) -> list[str]:
        return sorted(self._backends)


def discord_kinds(resolve_guild: GuildResolver, *, mute_role_name: str, restrict_role_name: str) -> ActionKinds:
    return ActionKinds(
        [
            BanBackend(resolve_guild),
            RoleBackend("mute", mute_role_name, "muted", "unmuted", resolve_guild),
            RoleBackend("restrict", restrict_role_name, "restricted", "unrestricted", resolve_guild),
        ]
    )
