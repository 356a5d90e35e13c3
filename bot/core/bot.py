from __future__ import annotations

import logging
from pathlib import Path

import discord

from core.config import AppConfig
from core.context import AppContext
from core.dispatch import HandlerRegistry, InteractionDispatcher
from database.base import Database
from database.migrations.runner import run_migrations
from database.repositories import GuildRepository, TicketRepository
from handlers.setup import SetupHandlers
from handlers.tickets import TicketHandlers
from services.cache import CacheBackend, build_cache
from services.discord_platform import DiscordPlatform, decode_interaction
from services.setup_service import SetupService
from services.task_runner import TaskRunner
from services.ticket_service import TicketService

LOGGER = logging.getLogger(__name__)

_ACTIVITY_TYPES = {
    "playing": discord.ActivityType.playing,
    "listening": discord.ActivityType.listening,
    "watching": discord.ActivityType.watching,
    "competing": discord.ActivityType.competing,
}


class TicketBot(discord.Client):
    """Gateway client. Every interaction goes through :class:`InteractionDispatcher`."""

    def __init__(self, config: AppConfig) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        super().__init__(
            intents=intents,
            application_id=config.discord.application_id,
            allowed_mentions=discord.AllowedMentions(everyone=False, roles=True, users=True, replied_user=False),
        )
        self.config = config
        self.root_dir = Path(__file__).resolve().parent.parent
        self.database = Database(
            url=config.database.url,
            timeout_seconds=config.database.timeout_seconds,
            pool_min_size=config.database.pool_min_size,
            pool_max_size=config.database.pool_max_size,
        )
        self.cache: CacheBackend | None = None
        self.tasks = TaskRunner()
        self.platform = DiscordPlatform(self)
        self.registry = HandlerRegistry()
        self.dispatcher = InteractionDispatcher(self.registry)

        # Initialized during setup_hook.
        self.context: AppContext | None = None
        self.ticket_service: TicketService
        self.setup_service: SetupService

    async def setup_hook(self) -> None:
        await self.database.connect()
        applied = await run_migrations(self.database, self.root_dir / "database" / "migrations")
        if applied:
            LOGGER.info("Applied migrations: %s", ", ".join(applied))
        self.cache = await build_cache(self.config.redis)

        self.context = AppContext(
            config=self.config,
            database=self.database,
            cache=self.cache,
            guild_repo=GuildRepository(self.database, self.cache, self.config.redis.default_ttl),
            ticket_repo=TicketRepository(self.database),
            platform=self.platform,
            tasks=self.tasks,
        )
        self.ticket_service = TicketService(self.context)
        self.setup_service = SetupService(self.context)
        SetupHandlers(self.setup_service).register(self.registry)
        TicketHandlers(self.ticket_service).register(self.registry)

        await self.ticket_service.resume_pending_removals()

    async def sync_commands(self, guild: discord.abc.Snowflake) -> None:
        if self.application_id is None:
            LOGGER.warning("No application id known, skipping command sync. guild=%s", guild.id)
            return
        try:
            synced = await self.http.bulk_upsert_guild_commands(
                self.application_id, guild.id, self.registry.command_definitions()
            )
        except discord.HTTPException:
            LOGGER.exception("Failed to sync application commands. guild=%s", guild.id)
            return
        LOGGER.info("Synced %s application commands. guild=%s", len(synced), guild.id)

    async def on_ready(self) -> None:
        LOGGER.info("Bot ready as %s (%s)", self.user, self.user.id if self.user else "n/a")
        if self.config.discord.sync_commands_on_start:
            for guild in self.guilds:
                await self.sync_commands(guild)

        kind = _ACTIVITY_TYPES.get(self.config.discord.activity_type.lower(), discord.ActivityType.watching)
        activity = discord.Activity(type=kind, name=self.config.discord.status_text)
        await self.change_presence(status=discord.Status.online, activity=activity)

    async def on_guild_join(self, guild: discord.Guild) -> None:
        LOGGER.info("Joined guild %s (%s)", guild.name, guild.id)
        await self.sync_commands(guild)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        await self.dispatcher.dispatch(decode_interaction(interaction))

    async def close(self) -> None:
        await self.tasks.shutdown()
        await super().close()
        await self.database.close()
        if self.cache:
            await self.cache.close()
