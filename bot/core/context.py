from __future__ import annotations

from dataclasses import dataclass, field

from core.config import AppConfig
from database.base import Database
from database.repositories import GuildRepository, TicketRepository
from services.cache import CacheBackend
from services.platform import Platform
from services.task_runner import TaskRunner
from utils.locks import KeyedLock


@dataclass(slots=True)
class AppContext:
    """Everything a handler or service needs, built once during startup."""

    config: AppConfig
    database: Database
    cache: CacheBackend
    guild_repo: GuildRepository
    ticket_repo: TicketRepository
    platform: Platform
    tasks: TaskRunner = field(default_factory=TaskRunner)
    locks: KeyedLock = field(default_factory=KeyedLock)
