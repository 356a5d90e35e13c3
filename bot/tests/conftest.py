from __future__ import annotations

import itertools
from collections.abc import AsyncIterator
from dataclasses import dataclass, replace
from pathlib import Path

import pytest
import pytest_asyncio

from core.config import AppConfig, DiscordConfig, TicketConfig
from core.context import AppContext
from core.errors import RemoteNotFoundError
from database.base import Database
from database.migrations.runner import MIGRATIONS_DIR, run_migrations
from database.models import GuildConfig
from database.repositories import GuildRepository, TicketRepository
from services.cache import MemoryCache
from services.platform import (
    Actor,
    ChannelKind,
    OutboundMessage,
    PermissionRule,
    RemoteChannel,
    RemoteMessage,
)
from services.task_runner import TaskRunner

GUILD_ID = "100"
STAFF_ROLE_ID = "200"


@dataclass(slots=True)
class PostedMessage:
    channel_id: str
    message: OutboundMessage
    pinned: bool = False


class FakePlatform:
    """In-memory stand-in for Discord. ``fail_on`` maps a method name to the error it raises."""

    def __init__(self) -> None:
        self.channels: dict[str, RemoteChannel] = {}
        self.channel_rules: dict[str, list[PermissionRule]] = {}
        self.messages: dict[str, PostedMessage] = {}
        self.deleted_channels: list[str] = []
        self.fail_on: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.ready = True
        self._ids = itertools.count(5000)

    def _next_id(self) -> str:
        return str(next(self._ids))

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        error = self.fail_on.get(name)
        if error is not None:
            raise error

    def _existing(self, channel_id: str) -> RemoteChannel:
        channel = self.channels.get(channel_id)
        if channel is None:
            raise RemoteNotFoundError(f"channel {channel_id}")
        return channel

    def add_channel(self, name: str, kind: ChannelKind = ChannelKind.TEXT, parent_id: str = "") -> RemoteChannel:
        channel = RemoteChannel(id=self._next_id(), name=name, kind=kind, parent_id=parent_id)
        self.channels[channel.id] = channel
        return channel

    def categories(self) -> list[RemoteChannel]:
        return [channel for channel in self.channels.values() if channel.kind is ChannelKind.CATEGORY]

    def messages_in(self, channel_id: str) -> list[PostedMessage]:
        return [posted for posted in self.messages.values() if posted.channel_id == channel_id]

    def is_ready(self) -> bool:
        return self.ready

    async def fetch_channel(self, channel_id: str) -> RemoteChannel:
        self._enter("fetch_channel")
        return replace(self._existing(channel_id))

    async def create_category(self, guild_id: str, name: str, rules: list[PermissionRule]) -> RemoteChannel:
        self._enter("create_category")
        category = self.add_channel(name, ChannelKind.CATEGORY)
        self.channel_rules[category.id] = list(rules)
        return replace(category)

    async def create_text_channel(
        self,
        guild_id: str,
        name: str,
        *,
        parent_id: str,
        topic: str,
        rules: list[PermissionRule],
    ) -> RemoteChannel:
        self._enter("create_text_channel")
        self._existing(parent_id)
        channel = self.add_channel(name, ChannelKind.TEXT, parent_id)
        channel.topic = topic
        self.channel_rules[channel.id] = list(rules)
        return replace(channel)

    async def edit_channel(
        self,
        channel_id: str,
        *,
        name: str | None = None,
        parent_id: str | None = None,
        topic: str | None = None,
    ) -> None:
        self._enter("edit_channel")
        channel = self._existing(channel_id)
        if name is not None:
            channel.name = name
        if parent_id is not None:
            channel.parent_id = parent_id
        if topic is not None:
            channel.topic = topic

    async def delete_channel(self, channel_id: str) -> None:
        self._enter("delete_channel")
        self._existing(channel_id)
        del self.channels[channel_id]
        self.deleted_channels.append(channel_id)

    async def send_message(self, channel_id: str, message: OutboundMessage) -> RemoteMessage:
        self._enter("send_message")
        self._existing(channel_id)
        message_id = self._next_id()
        self.messages[message_id] = PostedMessage(channel_id=channel_id, message=message)
        return RemoteMessage(id=message_id, channel_id=channel_id, content=message.content)

    async def fetch_message(self, channel_id: str, message_id: str) -> RemoteMessage:
        self._enter("fetch_message")
        posted = self.messages.get(message_id)
        if posted is None or posted.channel_id != channel_id:
            raise RemoteNotFoundError(f"message {message_id}")
        return RemoteMessage(
            id=message_id,
            channel_id=channel_id,
            content=posted.message.content,
            buttons=list(posted.message.buttons),
        )

    async def edit_message(self, channel_id: str, message_id: str, message: OutboundMessage) -> None:
        self._enter("edit_message")
        posted = self.messages.get(message_id)
        if posted is None:
            raise RemoteNotFoundError(f"message {message_id}")
        posted.message = message

    async def pin_message(self, channel_id: str, message_id: str) -> None:
        self._enter("pin_message")
        self.messages[message_id].pinned = True


class FakeResponder:
    def __init__(self, error: Exception | None = None) -> None:
        self.replies: list[OutboundMessage] = []
        self.error = error

    @property
    def is_done(self) -> bool:
        return bool(self.replies)

    async def reply(self, message: OutboundMessage) -> None:
        if self.error is not None:
            raise self.error
        self.replies.append(message)

    @property
    def last(self) -> OutboundMessage:
        return self.replies[-1]


def member(user_id: str = "1", username: str = "alice") -> Actor:
    return Actor(user_id=user_id, username=username)


def staff(user_id: str = "2", username: str = "bob") -> Actor:
    return Actor(user_id=user_id, username=username, role_ids=frozenset({STAFF_ROLE_ID}))


def admin(user_id: str = "3", username: str = "carol") -> Actor:
    return Actor(user_id=user_id, username=username, is_admin=True)


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(discord=DiscordConfig(token="test-token"), tickets=TicketConfig())


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    db = Database(url=f"sqlite:///{tmp_path / 'tickets.db'}")
    await db.connect()
    await run_migrations(db, MIGRATIONS_DIR)
    yield db
    await db.close()


@pytest_asyncio.fixture
async def ctx(app_config: AppConfig, database: Database, platform: FakePlatform) -> AsyncIterator[AppContext]:
    cache = MemoryCache()
    context = AppContext(
        config=app_config,
        database=database,
        cache=cache,
        guild_repo=GuildRepository(database, cache),
        ticket_repo=TicketRepository(database),
        platform=platform,
        tasks=TaskRunner(),
    )
    yield context
    await context.tasks.shutdown()


@pytest_asyncio.fixture
async def configured_guild(ctx: AppContext, platform: FakePlatform) -> GuildConfig:
    intake = platform.add_channel("tickets")
    guild = GuildConfig(
        guild_id=GUILD_ID,
        ticketing_enabled=True,
        channel_id=intake.id,
        role_id=STAFF_ROLE_ID,
    )
    await ctx.guild_repo.save(guild)
    return guild
