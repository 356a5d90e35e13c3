from __future__ import annotations

from typing import Any

from core.dispatch import ComponentEvent, HandlerRegistry, SubcommandRouter, TicketEvent
from services.category_resolver import CategoryStage
from services.platform import OutboundMessage
from services.ticket_service import TicketService
from utils.constants import (
    CLAIM_SUBCOMMAND,
    CLAIM_TICKET_BUTTON_ID,
    CLOSE_SUBCOMMAND,
    CLOSE_TICKET_BUTTON_ID,
    DELETE_CONFIRMATION_BUTTON_ID,
    DELETE_SUBCOMMAND,
    DELETE_TICKET_BUTTON_ID,
    OPEN_TICKET_BUTTON_ID,
    REOPEN_SUBCOMMAND,
    REOPEN_TICKET_BUTTON_ID,
    TICKET_COMMAND_NAME,
)
from views.ticket_controls import delete_confirmation_prompt, ticket_created_reply

TICKET_COMMAND: dict[str, Any] = {
    "name": TICKET_COMMAND_NAME,
    "description": "Manage the ticket in this channel",
    "type": 1,
    "dm_permission": False,
    "options": [
        {"type": 1, "name": CLAIM_SUBCOMMAND, "description": "Claim this ticket"},
        {"type": 1, "name": CLOSE_SUBCOMMAND, "description": "Close this ticket"},
        {"type": 1, "name": DELETE_SUBCOMMAND, "description": "Delete this ticket"},
        {"type": 1, "name": REOPEN_SUBCOMMAND, "description": "Reopen this ticket"},
    ],
}


class TicketHandlers:
    """Ticket buttons and the ``/ticket`` command. Each action is reachable both ways."""

    def __init__(self, service: TicketService) -> None:
        self.service = service

    def register(self, registry: HandlerRegistry) -> None:
        registry.add_command(
            TICKET_COMMAND_NAME,
            SubcommandRouter(
                TICKET_COMMAND_NAME,
                [
                    (CLAIM_SUBCOMMAND, self.claim),
                    (CLOSE_SUBCOMMAND, self.close),
                    (DELETE_SUBCOMMAND, self.request_delete),
                    (REOPEN_SUBCOMMAND, self.reopen),
                ],
            ),
            TICKET_COMMAND,
        )
        registry.add_component(OPEN_TICKET_BUTTON_ID, self.open_ticket)
        registry.add_component(CLAIM_TICKET_BUTTON_ID, self.claim)
        registry.add_component(CLOSE_TICKET_BUTTON_ID, self.close)
        registry.add_component(REOPEN_TICKET_BUTTON_ID, self.reopen)
        registry.add_component(DELETE_TICKET_BUTTON_ID, self.request_delete)
        registry.add_component(DELETE_CONFIRMATION_BUTTON_ID, self.confirm_delete)

    async def open_ticket(self, event: ComponentEvent) -> None:
        ticket = await self.service.create_ticket(event.guild_id, event.actor)
        category_name = self.service.resolver.display_name(CategoryStage.OPEN)
        await event.responder.reply(ticket_created_reply(ticket, category_name))

    async def claim(self, event: TicketEvent) -> None:
        await self.service.claim_ticket(event.guild_id, event.channel_id, event.actor)
        await event.responder.reply(
            OutboundMessage(content=f"{event.actor.mention}, you have claimed this ticket.")
        )

    async def close(self, event: TicketEvent) -> None:
        await self.service.close_ticket(event.guild_id, event.channel_id, event.actor)
        await event.responder.reply(
            OutboundMessage(content=f"{event.actor.mention}, congratulations on closing this ticket.")
        )

    async def reopen(self, event: TicketEvent) -> None:
        await self.service.reopen_ticket(event.guild_id, event.channel_id, event.actor)
        await event.responder.reply(
            OutboundMessage(content=f"{event.actor.mention}, you have reopened this ticket.")
        )

    async def request_delete(self, event: TicketEvent) -> None:
        await self.service.request_delete(event.guild_id, event.channel_id, event.actor)
        await event.responder.reply(delete_confirmation_prompt())

    async def confirm_delete(self, event: ComponentEvent) -> None:
        await self.service.confirm_delete(event.guild_id, event.channel_id, event.actor)
        await event.responder.reply(
            OutboundMessage(
                content=(
                    f"{event.actor.mention}, this ticket has been deleted. "
                    f"This channel will be deleted in {self.service.delete_delay_seconds} seconds."
                )
            )
        )
