from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class GuildConfig:
    guild_id: str
    ticketing_enabled: bool = False
    channel_id: str = ""
    role_id: str = ""
    open_message_id: str = ""
    open_category_id: str = ""
    claimed_category_id: str = ""
    closed_category_id: str = ""

    @property
    def is_ticketing_ready(self) -> bool:
        return self.ticketing_enabled and bool(self.channel_id) and bool(self.role_id)


@dataclass(slots=True)
class TicketRecord:
    ticket_number: int
    guild_id: str
    channel_id: str
    user_id: str
    username: str
    created_at: str
    setup_message_id: str = ""
    claimed_by: str = ""
    closed_by: str = ""
    deleted: bool = False
    channel_delete_due_at: str | None = None

    @property
    def name(self) -> str:
        return f"{self.ticket_number}-{self.username}"

    @property
    def is_claimed(self) -> bool:
        return bool(self.claimed_by)

    @property
    def is_closed(self) -> bool:
        return bool(self.closed_by)
