from __future__ import annotations

from dataclasses import asdict, replace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from conftest import GUILD_ID, STAFF_ROLE_ID, FakePlatform
from core.context import AppContext
from core.errors import UpstreamError
from database.models import GuildConfig
from database.repositories import GuildRepository
from services.cache import RedisCache
from services.category_resolver import CategoryResolver, CategoryStage
from services.platform import ChannelKind, OverwriteTarget


@pytest.mark.asyncio
async def test_resolve_creates_category_once(
    ctx: AppContext, platform: FakePlatform, configured_guild: GuildConfig
) -> None:
    resolver = CategoryResolver(ctx)

    first = await resolver.resolve(configured_guild, CategoryStage.CLAIMED, "1")
    second = await resolver.resolve(configured_guild, CategoryStage.CLAIMED, "1")

    assert first == second
    assert [category.name for category in platform.categories()] == ["Claimed Tickets"]
    assert platform.calls.count("create_category") == 1
    stored = await ctx.guild_repo.get(GUILD_ID)
    assert stored is not None
    assert stored.claimed_category_id == first
    assert stored.open_category_id == ""


@pytest.mark.asyncio
async def test_resolve_applies_visibility_rules(
    ctx: AppContext, platform: FakePlatform, configured_guild: GuildConfig
) -> None:
    category_id = await CategoryResolver(ctx).resolve(configured_guild, CategoryStage.OPEN, "42")

    rules = {(rule.target_id, rule.target, rule.allow) for rule in platform.channel_rules[category_id]}
    assert rules == {
        (GUILD_ID, OverwriteTarget.ROLE, False),
        ("42", OverwriteTarget.MEMBER, True),
        (STAFF_ROLE_ID, OverwriteTarget.ROLE, True),
    }


@pytest.mark.asyncio
async def test_resolve_recreates_deleted_category(
    ctx: AppContext, platform: FakePlatform, configured_guild: GuildConfig
) -> None:
    resolver = CategoryResolver(ctx)
    original = await resolver.resolve(configured_guild, CategoryStage.CLOSED, "1")
    del platform.channels[original]

    replacement = await resolver.resolve(configured_guild, CategoryStage.CLOSED, "1")

    assert replacement != original
    assert platform.channels[replacement].kind is ChannelKind.CATEGORY
    stored = await ctx.guild_repo.get(GUILD_ID)
    assert stored is not None and stored.closed_category_id == replacement


@pytest.mark.asyncio
async def test_resolve_propagates_other_platform_errors(
    ctx: AppContext, platform: FakePlatform, configured_guild: GuildConfig
) -> None:
    resolver = CategoryResolver(ctx)
    await resolver.resolve(configured_guild, CategoryStage.OPEN, "1")
    platform.fail_on["fetch_channel"] = UpstreamError("HTTP 502")

    with pytest.raises(UpstreamError):
        await resolver.resolve(configured_guild, CategoryStage.OPEN, "1")

    assert platform.calls.count("create_category") == 1


@pytest.mark.asyncio
async def test_resolve_uses_stored_config_over_stale_copy(
    ctx: AppContext, platform: FakePlatform, configured_guild: GuildConfig
) -> None:
    resolver = CategoryResolver(ctx)
    stale = GuildConfig(
        guild_id=configured_guild.guild_id,
        ticketing_enabled=True,
        channel_id=configured_guild.channel_id,
        role_id=configured_guild.role_id,
    )
    category_id = await resolver.resolve(configured_guild, CategoryStage.OPEN, "1")

    assert await resolver.resolve(stale, CategoryStage.OPEN, "1") == category_id
    assert stale.open_category_id == category_id
    assert len(platform.categories()) == 1


class _FlakyRedisClient:
    """In-memory stand-in for ``redis.asyncio.Redis`` whose writes can be made to fail."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.failing_sets = 0

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> None:
        if self.failing_sets:
            self.failing_sets -= 1
            raise RedisConnectionError("connection reset")
        self.store[key] = value

    async def delete(self, key: str) -> None:
        self.store.pop(key, None)


@pytest.mark.asyncio
async def test_failed_cache_refresh_does_not_duplicate_categories(
    ctx: AppContext, platform: FakePlatform, configured_guild: GuildConfig
) -> None:
    client = _FlakyRedisClient()
    cache = RedisCache("redis://localhost:6379/0")
    cache._client = client
    repo = GuildRepository(ctx.database, cache)
    resolver = CategoryResolver(replace(ctx, cache=cache, guild_repo=repo))
    # Warm the cache with the settings as they were before any category existed.
    assert await repo.get(GUILD_ID) is not None
    before = GuildConfig(**asdict(configured_guild))

    client.failing_sets = 1
    first = await resolver.resolve(GuildConfig(**asdict(before)), CategoryStage.OPEN, "1")
    second = await resolver.resolve(GuildConfig(**asdict(before)), CategoryStage.OPEN, "1")

    assert first == second
    assert [category.name for category in platform.categories()] == ["Created Tickets"]
    cached = await repo.get(GUILD_ID)
    assert cached is not None and cached.open_category_id == first


@pytest.mark.asyncio
async def test_saved_settings_replace_cached_copy(ctx: AppContext, configured_guild: GuildConfig) -> None:
    client = _FlakyRedisClient()
    cache = RedisCache("redis://localhost:6379/0")
    cache._client = client
    repo = GuildRepository(ctx.database, cache)
    assert await repo.get(GUILD_ID) is not None

    client.failing_sets = 1
    await repo.save(replace(configured_guild, ticketing_enabled=False))

    assert client.store == {}
    reloaded = await repo.get(GUILD_ID)
    assert reloaded is not None and not reloaded.ticketing_enabled
