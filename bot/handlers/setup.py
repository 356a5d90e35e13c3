from __future__ import annotations

from typing import Any

from core.dispatch import ApplicationCommandEvent, HandlerRegistry, SubcommandRouter
from services.platform import OutboundMessage
from services.setup_service import SetupService
from utils.constants import (
    CHANNEL_OPTION,
    DISABLE_TICKETING_SUBCOMMAND,
    ENABLE_TICKETING_SUBCOMMAND,
    ROLE_OPTION,
    SETUP_COMMAND_NAME,
)

SETUP_COMMAND: dict[str, Any] = {
    "name": SETUP_COMMAND_NAME,
    "description": "Configure the ticket bot for this server",
    "type": 1,
    "dm_permission": False,
    "default_member_permissions": "8",
    "options": [
        {
            "type": 1,
            "name": ENABLE_TICKETING_SUBCOMMAND,
            "description": "Enable ticketing in a channel",
            "options": [
                {
                    "type": 7,
                    "name": CHANNEL_OPTION,
                    "description": "Channel members open tickets from",
                    "required": True,
                    "channel_types": [0],
                },
                {
                    "type": 8,
                    "name": ROLE_OPTION,
                    "description": "Role that handles tickets",
                    "required": True,
                },
            ],
        },
        {
            "type": 1,
            "name": DISABLE_TICKETING_SUBCOMMAND,
            "description": "Disable ticketing for this server",
        },
    ],
}


class SetupHandlers:
    def __init__(self, service: SetupService) -> None:
        self.service = service

    def register(self, registry: HandlerRegistry) -> None:
        registry.add_command(
            SETUP_COMMAND_NAME,
            SubcommandRouter(
                SETUP_COMMAND_NAME,
                [
                    (ENABLE_TICKETING_SUBCOMMAND, self.enable),
                    (DISABLE_TICKETING_SUBCOMMAND, self.disable),
                ],
                check=lambda event: self.service.require_admin(event.actor),
            ),
            SETUP_COMMAND,
        )

    async def enable(self, event: ApplicationCommandEvent) -> None:
        guild = await self.service.enable_ticketing(
            event.guild_id,
            event.actor,
            channel_id=event.options.get(CHANNEL_OPTION, ""),
            role_id=event.options.get(ROLE_OPTION, ""),
        )
        await event.responder.reply(
            OutboundMessage(content=f"Ticketing has been enabled in channel <#{guild.channel_id}>", ephemeral=True)
        )

    async def disable(self, event: ApplicationCommandEvent) -> None:
        await self.service.disable_ticketing(event.guild_id, event.actor)
        await event.responder.reply(OutboundMessage(content="Ticketing has been disabled", ephemeral=True))
