from __future__ import annotations

import asyncio
import logging

import discord
from discord.ext import commands

from .config import Settings
from .database import initialize_database
from .error_handlers import setup_error_handlers
from .moderation.engine import ModerationEngine
from .moderation.kinds import discord_kinds
from .moderation.notify import DiscordNotifier
from .permissions import ExemptionPolicy
from .services.moderation_audit_store import ModerationAuditStore
from .services.moderation_store import ModerationStore

log = logging.getLogger("warden.bot")


class _CommandSyncManager:
    def __init__(self, bot: "WardenBot") -> None:
        self.bot = bot
        self._lock = asyncio.Lock()

    async def sync_startup(self) -> None:
        async with self._lock:
            sync_guild_id = self.bot.settings.sync_guild_id
            if sync_guild_id:
                guild = discord.Object(id=sync_guild_id)
                self.bot.tree.copy_global_to(guild=guild)
                await self.bot.tree.sync(guild=guild)
                log.info("Commands synced to guild %d", sync_guild_id)
            else:
                await self.bot.tree.sync()
                log.info("Commands synced globally")
            for c in self.bot.tree.get_commands():
                log.info(" - /%s", c.name)


class WardenBot(commands.Bot):
    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        # Needed for on_member_join and member/role lookups.
        intents.members = True
        log.info("INTENTS: guilds=%s members=%s", intents.guilds, intents.members)

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True),
            help_command=None,
        )

        self.settings = settings
        self.owner_id = settings.owner_id or None

        self.moderation_store = ModerationStore(settings.sqlite_path)
        self.moderation_audit_store = ModerationAuditStore(settings.sqlite_path)

        kinds = discord_kinds(
            lambda: self.get_guild(settings.guild_id),
            mute_role_name=settings.mute_role_name,
            restrict_role_name=settings.restrict_role_name,
        )
        self.notifier = DiscordNotifier(
            self,
            guild_id=settings.guild_id,
            mod_logs_channel_name=settings.mod_logs_channel_name,
            bot_ops_channel_name=settings.bot_ops_channel_name,
            dm_notify=settings.dm_notify,
            verbs={k.kind: (k.verb, k.undo_verb) for k in kinds},
        )
        self.engine = ModerationEngine(
            store=self.moderation_store,
            kinds=kinds,
            notifier=self.notifier,
            audit_store=self.moderation_audit_store,
            is_exempt=ExemptionPolicy(
                self,
                guild_id=settings.guild_id,
                owner_id=settings.owner_id,
                staff_role_names=settings.staff_role_names,
            ),
            max_sleep_seconds=settings.scheduler_max_sleep_seconds,
        )
        self._sync_mgr = _CommandSyncManager(self)
        self._lifecycle_started = False

    async def setup_hook(self) -> None:
        await initialize_database(
            self.settings.sqlite_path,
            [self.moderation_store, self.moderation_audit_store],
        )
        setup_error_handlers(self)

        from .cogs.moderation import ModerationCog

        await self.add_cog(ModerationCog(self))
        log.info("Loaded cog: ModerationCog")
        await self._sync_mgr.sync_startup()
        log.info("Command sync complete")

    async def on_ready(self) -> None:
        # Backends need the guild cache, which is only populated once ready.
        if self._lifecycle_started:
            return
        self._lifecycle_started = True
        if self.get_guild(self.settings.guild_id) is None:
            log.error("Configured guild %d is not visible to the bot", self.settings.guild_id)
        await self.engine.start()
        log.info("Moderation lifecycle started (pending expirations=%d)", len(self.engine.scheduler.pending()))
        try:
            await self.engine.check_consistency()
        except Exception:
            log.exception("Startup consistency check failed")

    async def close(self) -> None:
        try:
            await self.engine.stop()
        finally:
            await super().close()
