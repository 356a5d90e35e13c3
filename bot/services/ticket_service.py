from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum

from core.context import AppContext
from core.errors import (
    AlreadyClaimedError,
    AlreadyInStateError,
    BotError,
    PermissionDeniedError,
    RemoteNotFoundError,
    TicketingNotConfiguredError,
    TicketNotFoundError,
)
from database.models import GuildConfig, TicketRecord
from services.category_resolver import CategoryResolver, CategoryStage
from services.platform import Actor, staff_visibility
from utils.time import seconds_until, to_iso, utc_now
from views.ticket_controls import control_message

LOGGER = logging.getLogger(__name__)


class TicketStatus(StrEnum):
    CREATED = "Created"
    CLAIMED = "Claimed"
    CLOSED = "Closed"
    REOPENED = "Reopened"
    DELETED = "Deleted"


def build_topic(ticket: TicketRecord, status: TicketStatus) -> str:
    """Render the channel topic from scratch, e.g.
    ``Ticket #3 | Status: Claimed | Claimed By: <@2> | Created By: <@1>``.
    """
    parts = [f"Ticket #{ticket.ticket_number}", f"Status: {status}"]
    if ticket.closed_by:
        parts.append(f"Closed By: <@{ticket.closed_by}>")
    if ticket.claimed_by:
        parts.append(f"Claimed By: <@{ticket.claimed_by}>")
    parts.append(f"Created By: <@{ticket.user_id}>")
    return " | ".join(parts)


@dataclass(slots=True)
class _Operation:
    name: str
    guild_id: str
    channel_id: str
    ticket_number: int | None = None

    def describe(self) -> str:
        return (
            f"operation={self.name} guild={self.guild_id} "
            f"channel={self.channel_id} ticket={self.ticket_number}"
        )


class TicketService:
    """Ticket lifecycle: create, claim, close, reopen and delete.

    Every transition on one ticket runs under that ticket's lock and re-reads
    the record after acquiring it. Ticket creation is serialized per guild so
    two members never draw the same number. Cosmetic follow-ups (control
    buttons, pinning, topic refresh after delete) run on the task runner and
    never hold up the interaction reply.
    """

    def __init__(self, ctx: AppContext, resolver: CategoryResolver | None = None) -> None:
        self.ctx = ctx
        self.resolver = resolver or CategoryResolver(ctx)

    @property
    def delete_delay_seconds(self) -> int:
        return self.ctx.config.tickets.channel_delete_delay_seconds

    @asynccontextmanager
    async def _operation(self, name: str, guild_id: str, channel_id: str) -> AsyncIterator[_Operation]:
        operation = _Operation(name=name, guild_id=guild_id, channel_id=channel_id)
        try:
            yield operation
        except BotError:
            raise
        except Exception as exc:
            exc.add_note(operation.describe())
            raise

    async def _require_guild(self, guild_id: str) -> GuildConfig:
        guild = await self.ctx.guild_repo.get(guild_id)
        if guild is None or not guild.role_id:
            raise TicketingNotConfiguredError()
        return guild

    async def _require_ticket(self, guild_id: str, channel_id: str) -> TicketRecord:
        ticket = await self.ctx.ticket_repo.get_by_channel(guild_id, channel_id)
        if ticket is None:
            raise TicketNotFoundError()
        return ticket

    @staticmethod
    def _require_staff(guild: GuildConfig, actor: Actor, action: str) -> None:
        if not actor.has_role(guild.role_id):
            raise PermissionDeniedError(
                f"You do not have the ticket role to {action} tickets. [<@&{guild.role_id}>]"
            )

    @staticmethod
    def _ticket_lock(guild_id: str, channel_id: str) -> str:
        return f"ticket:{guild_id}:{channel_id}"

    async def create_ticket(self, guild_id: str, actor: Actor) -> TicketRecord:
        async with self._operation("create", guild_id, "") as operation:
            guild = await self.ctx.guild_repo.get(guild_id)
            if guild is None or not guild.is_ticketing_ready:
                raise TicketingNotConfiguredError()

            async with self.ctx.locks.hold(f"create:{guild_id}"):
                category_id = await self.resolver.resolve(guild, CategoryStage.OPEN, actor.user_id)
                number = await self.ctx.ticket_repo.latest_ticket_number(guild_id) + 1
                operation.ticket_number = number
                ticket = TicketRecord(
                    ticket_number=number,
                    guild_id=guild_id,
                    channel_id="",
                    user_id=actor.user_id,
                    username=actor.username,
                    created_at=to_iso(utc_now()) or "",
                )
                channel = await self.ctx.platform.create_text_channel(
                    guild_id,
                    ticket.name,
                    parent_id=category_id,
                    topic=build_topic(ticket, TicketStatus.CREATED),
                    rules=staff_visibility(guild_id, guild.role_id, actor.user_id),
                )
                ticket.channel_id = channel.id
                operation.channel_id = channel.id
                await self.ctx.ticket_repo.save(ticket)

        LOGGER.info(
            "Ticket created. guild=%s channel=%s ticket=%s user=%s",
            guild_id,
            ticket.channel_id,
            ticket.ticket_number,
            actor.user_id,
        )
        self.ctx.tasks.submit(
            lambda: self._post_control_message(guild_id, ticket.channel_id),
            name="ticket-control-message",
            guild=guild_id,
            channel=ticket.channel_id,
            ticket=ticket.ticket_number,
        )
        return ticket

    async def claim_ticket(self, guild_id: str, channel_id: str, actor: Actor) -> TicketRecord:
        async with self._operation("claim", guild_id, channel_id) as operation:
            guild = await self._require_guild(guild_id)
            async with self.ctx.locks.hold(self._ticket_lock(guild_id, channel_id)):
                ticket = await self._require_ticket(guild_id, channel_id)
                operation.ticket_number = ticket.ticket_number
                self._require_staff(guild, actor, "claim")
                if ticket.is_closed:
                    raise AlreadyInStateError("This ticket is closed. Reopen it before claiming.")
                if ticket.claimed_by == actor.user_id:
                    raise AlreadyInStateError("You have already claimed this ticket")
                if ticket.claimed_by:
                    raise AlreadyClaimedError(f"This ticket is already claimed by <@{ticket.claimed_by}>.")

                category_id = await self.resolver.resolve(guild, CategoryStage.CLAIMED, ticket.user_id)
                ticket.claimed_by = actor.user_id
                await self._move(ticket, category_id, TicketStatus.CLAIMED)
                await self.ctx.ticket_repo.save(ticket)

        LOGGER.info(
            "Ticket claimed. guild=%s channel=%s ticket=%s staff=%s",
            guild_id,
            channel_id,
            ticket.ticket_number,
            actor.user_id,
        )
        self._refresh_controls(ticket)
        return ticket

    async def close_ticket(self, guild_id: str, channel_id: str, actor: Actor) -> TicketRecord:
        async with self._operation("close", guild_id, channel_id) as operation:
            guild = await self._require_guild(guild_id)
            async with self.ctx.locks.hold(self._ticket_lock(guild_id, channel_id)):
                ticket = await self._require_ticket(guild_id, channel_id)
                operation.ticket_number = ticket.ticket_number
                self._require_staff(guild, actor, "close")
                channel = await self.ctx.platform.fetch_channel(channel_id)
                if ticket.is_closed or (
                    guild.closed_category_id and channel.parent_id == guild.closed_category_id
                ):
                    raise AlreadyInStateError("This ticket is already closed.")

                category_id = await self.resolver.resolve(guild, CategoryStage.CLOSED, ticket.user_id)
                ticket.closed_by = actor.user_id
                await self._move(ticket, category_id, TicketStatus.CLOSED)
                await self.ctx.ticket_repo.save(ticket)

        LOGGER.info(
            "Ticket closed. guild=%s channel=%s ticket=%s staff=%s",
            guild_id,
            channel_id,
            ticket.ticket_number,
            actor.user_id,
        )
        self._refresh_controls(ticket)
        return ticket

    async def reopen_ticket(self, guild_id: str, channel_id: str, actor: Actor) -> TicketRecord:
        async with self._operation("reopen", guild_id, channel_id) as operation:
            guild = await self._require_guild(guild_id)
            async with self.ctx.locks.hold(self._ticket_lock(guild_id, channel_id)):
                ticket = await self._require_ticket(guild_id, channel_id)
                operation.ticket_number = ticket.ticket_number
                if actor.user_id != ticket.user_id:
                    raise PermissionDeniedError("Only the ticket creator can reopen the ticket.")
                channel = await self.ctx.platform.fetch_channel(channel_id)
                if guild.open_category_id and channel.parent_id == guild.open_category_id:
                    raise AlreadyInStateError("This ticket is already open.")

                category_id = await self.resolver.resolve(guild, CategoryStage.OPEN, ticket.user_id)
                ticket.claimed_by = ""
                ticket.closed_by = ""
                await self._move(ticket, category_id, TicketStatus.REOPENED)
                await self.ctx.ticket_repo.save(ticket)

        LOGGER.info(
            "Ticket reopened. guild=%s channel=%s ticket=%s user=%s",
            guild_id,
            channel_id,
            ticket.ticket_number,
            actor.user_id,
        )
        self._refresh_controls(ticket)
        return ticket

    async def request_delete(self, guild_id: str, channel_id: str, actor: Actor) -> TicketRecord:
        async with self._operation("delete-request", guild_id, channel_id) as operation:
            guild = await self._require_guild(guild_id)
            ticket = await self._require_ticket(guild_id, channel_id)
            operation.ticket_number = ticket.ticket_number
            self._require_staff(guild, actor, "delete")
        return ticket

    async def confirm_delete(self, guild_id: str, channel_id: str, actor: Actor) -> TicketRecord:
        async with self._operation("delete", guild_id, channel_id) as operation:
            guild = await self._require_guild(guild_id)
            async with self.ctx.locks.hold(self._ticket_lock(guild_id, channel_id)):
                ticket = await self._require_ticket(guild_id, channel_id)
                operation.ticket_number = ticket.ticket_number
                self._require_staff(guild, actor, "delete")
                ticket.deleted = True
                ticket.channel_delete_due_at = to_iso(
                    utc_now() + timedelta(seconds=self.delete_delay_seconds)
                )
                await self.ctx.ticket_repo.save(ticket)

        LOGGER.info(
            "Ticket deleted. guild=%s channel=%s ticket=%s staff=%s remove_in=%ss",
            guild_id,
            channel_id,
            ticket.ticket_number,
            actor.user_id,
            self.delete_delay_seconds,
        )
        self.ctx.tasks.submit(
            lambda: self.ctx.platform.edit_channel(
                channel_id, topic=build_topic(ticket, TicketStatus.DELETED)
            ),
            name="ticket-topic",
            guild=guild_id,
            channel=channel_id,
            ticket=ticket.ticket_number,
        )
        self._schedule_removal(ticket, float(self.delete_delay_seconds))
        return ticket

    async def resume_pending_removals(self) -> int:
        """Re-arm channel removals that were still pending when the process stopped."""
        pending = await self.ctx.ticket_repo.list_pending_channel_removals()
        now = utc_now()
        for ticket in pending:
            self._schedule_removal(ticket, seconds_until(ticket.channel_delete_due_at, now))
        if pending:
            LOGGER.info("Resumed pending ticket channel removals. count=%s", len(pending))
        return len(pending)

    def _schedule_removal(self, ticket: TicketRecord, delay_seconds: float) -> None:
        self.ctx.tasks.schedule(
            delay_seconds,
            lambda: self._remove_channel(ticket),
            name="ticket-channel-removal",
            guild=ticket.guild_id,
            channel=ticket.channel_id,
            ticket=ticket.ticket_number,
        )

    async def _remove_channel(self, ticket: TicketRecord) -> None:
        try:
            await self.ctx.platform.delete_channel(ticket.channel_id)
        except RemoteNotFoundError:
            LOGGER.info(
                "Ticket channel already removed. guild=%s channel=%s",
                ticket.guild_id,
                ticket.channel_id,
            )
        ticket.channel_delete_due_at = None
        await self.ctx.ticket_repo.save(ticket)
        LOGGER.info(
            "Ticket channel removed. guild=%s channel=%s ticket=%s",
            ticket.guild_id,
            ticket.channel_id,
            ticket.ticket_number,
        )

    async def _move(self, ticket: TicketRecord, category_id: str, status: TicketStatus) -> None:
        await self.ctx.platform.edit_channel(
            ticket.channel_id,
            name=ticket.name,
            parent_id=category_id,
            topic=build_topic(ticket, status),
        )

    async def _post_control_message(self, guild_id: str, channel_id: str) -> None:
        async with self.ctx.locks.hold(self._ticket_lock(guild_id, channel_id)):
            ticket = await self.ctx.ticket_repo.get_by_channel(guild_id, channel_id)
            if ticket is None:
                return
            message = await self.ctx.platform.send_message(channel_id, control_message(ticket))
            await self.ctx.platform.pin_message(channel_id, message.id)
            ticket.setup_message_id = message.id
            await self.ctx.ticket_repo.save(ticket)

    def _refresh_controls(self, ticket: TicketRecord) -> None:
        self.ctx.tasks.submit(
            lambda: self._render_controls(ticket.guild_id, ticket.channel_id),
            name="ticket-controls",
            guild=ticket.guild_id,
            channel=ticket.channel_id,
            ticket=ticket.ticket_number,
        )

    async def _render_controls(self, guild_id: str, channel_id: str) -> None:
        # Rendered from the latest stored state, so a late refresh never rolls buttons back.
        async with self.ctx.locks.hold(f"controls:{guild_id}:{channel_id}"):
            ticket = await self.ctx.ticket_repo.get_by_channel(guild_id, channel_id)
            if ticket is None:
                return
            if not ticket.setup_message_id:
                LOGGER.warning(
                    "Ticket has no control message yet. guild=%s channel=%s ticket=%s",
                    guild_id,
                    channel_id,
                    ticket.ticket_number,
                )
                return
            await self.ctx.platform.edit_message(
                channel_id, ticket.setup_message_id, control_message(ticket)
            )
