from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import yaml
from dotenv import load_dotenv

T = TypeVar("T")

_TRUTHY = frozenset({"1", "true", "yes", "on"})

DATABASE_URL_PREFIXES = ("sqlite:///", "postgresql://", "postgres://")


class ConfigError(RuntimeError):
    pass


@dataclass(slots=True)
class DiscordConfig:
    token: str
    application_id: int | None = None
    sync_commands_on_start: bool = True
    status_text: str = "Support tickets"
    activity_type: str = "watching"


@dataclass(slots=True)
class DatabaseConfig:
    url: str = "sqlite:///./data/tickets.db"
    pool_min_size: int = 2
    pool_max_size: int = 10
    timeout_seconds: int = 30


@dataclass(slots=True)
class RedisConfig:
    enabled: bool = False
    url: str = "redis://localhost:6379/0"
    # Guild settings are cached for this many seconds.
    default_ttl: int = 120


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    directory: str = "logs"
    file_name: str = "bot.log"
    max_bytes: int = 10_000_000
    backup_count: int = 10
    json_console: bool = False


@dataclass(slots=True)
class ApiConfig:
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass(slots=True)
class TicketConfig:
    channel_delete_delay_seconds: int = 60
    open_category_name: str = "Created Tickets"
    claimed_category_name: str = "Claimed Tickets"
    closed_category_name: str = "Closed Tickets"


@dataclass(slots=True)
class AppConfig:
    discord: DiscordConfig
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    tickets: TicketConfig = field(default_factory=TicketConfig)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


class _Settings:
    """Looks values up in the environment first, then in the YAML document."""

    def __init__(self, raw: dict[str, Any]) -> None:
        self._raw = raw

    def section(self, name: str) -> dict[str, Any]:
        node = self._raw.get(name)
        return node if isinstance(node, dict) else {}

    def get(self, section: str, key: str, default: T, *, env: str | None = None, cast: Callable[[Any], T] = str) -> T:
        value: Any = None
        if env:
            env_value = os.getenv(env)
            if env_value is not None and env_value.strip():
                value = env_value.strip()
        if value is None:
            value = self.section(section).get(key)
        if value is None:
            return default
        try:
            return cast(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{section}.{key} has an invalid value: {value!r}") from exc


def _read_document(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a mapping")
    return raw


def _discord(settings: _Settings) -> DiscordConfig:
    token = settings.get("discord", "token", "", env="DISCORD_TOKEN")
    if not token or "${" in token:
        raise ConfigError("DISCORD_TOKEN is required")
    return DiscordConfig(
        token=token,
        application_id=settings.get("discord", "application_id", None, env="DISCORD_APPLICATION_ID", cast=int),
        sync_commands_on_start=settings.get(
            "discord", "sync_commands_on_start", True, env="SYNC_COMMANDS", cast=_to_bool
        ),
        status_text=settings.get("discord", "status_text", "Support tickets"),
        activity_type=settings.get("discord", "activity_type", "watching"),
    )


def _database(settings: _Settings) -> DatabaseConfig:
    url = settings.get("database", "url", "sqlite:///./data/tickets.db", env="DATABASE_URL")
    if not url.startswith(DATABASE_URL_PREFIXES):
        raise ConfigError("Unsupported database URL. Use sqlite:/// or postgresql://")
    return DatabaseConfig(
        url=url,
        pool_min_size=settings.get("database", "pool_min_size", 2, env="DB_POOL_MIN", cast=int),
        pool_max_size=settings.get("database", "pool_max_size", 10, env="DB_POOL_MAX", cast=int),
        timeout_seconds=settings.get("database", "timeout_seconds", 30, env="DB_TIMEOUT_SECONDS", cast=int),
    )


def _redis(settings: _Settings) -> RedisConfig:
    return RedisConfig(
        enabled=settings.get("redis", "enabled", False, env="REDIS_ENABLED", cast=_to_bool),
        url=settings.get("redis", "url", "redis://localhost:6379/0", env="REDIS_URL"),
        default_ttl=settings.get("redis", "default_ttl", 120, env="REDIS_DEFAULT_TTL", cast=int),
    )


def _logging(settings: _Settings) -> LoggingConfig:
    return LoggingConfig(
        level=settings.get("logging", "level", "INFO", env="LOG_LEVEL").upper(),
        directory=settings.get("logging", "directory", "logs"),
        file_name=settings.get("logging", "file_name", "bot.log"),
        max_bytes=settings.get("logging", "max_bytes", 10_000_000, cast=int),
        backup_count=settings.get("logging", "backup_count", 10, cast=int),
        json_console=settings.get("logging", "json_console", False, cast=_to_bool),
    )


def _api(settings: _Settings) -> ApiConfig:
    return ApiConfig(
        enabled=settings.get("api", "enabled", True, env="API_ENABLED", cast=_to_bool),
        host=settings.get("api", "host", "0.0.0.0"),
        port=settings.get("api", "port", 8080, env="API_PORT", cast=int),
    )


def _tickets(settings: _Settings) -> TicketConfig:
    tickets = TicketConfig(
        channel_delete_delay_seconds=settings.get(
            "tickets", "channel_delete_delay_seconds", 60, env="TICKET_DELETE_DELAY_SECONDS", cast=int
        ),
        open_category_name=settings.get("tickets", "open_category_name", "Created Tickets"),
        claimed_category_name=settings.get("tickets", "claimed_category_name", "Claimed Tickets"),
        closed_category_name=settings.get("tickets", "closed_category_name", "Closed Tickets"),
    )
    if tickets.channel_delete_delay_seconds < 0:
        raise ConfigError("tickets.channel_delete_delay_seconds must not be negative")
    return tickets


def load_config(config_path: Path) -> AppConfig:
    """Build the application config from ``config.yaml`` plus ``.env`` overrides.

    The ``.env`` file is looked up next to the ``config`` directory. Environment
    variables win over YAML values.
    """
    load_dotenv(config_path.parent.parent / ".env")
    settings = _Settings(_read_document(config_path))
    return AppConfig(
        discord=_discord(settings),
        database=_database(settings),
        redis=_redis(settings),
        logging=_logging(settings),
        api=_api(settings),
        tickets=_tickets(settings),
    )
