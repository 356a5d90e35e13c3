"""Routing of decoded Discord interactions to handlers.

Events arrive as one of three variants. Slash commands are routed twice: first
by command name to a controller, then by sub-command name to a processor.
Buttons are routed by custom id. :class:`InteractionDispatcher` is the only
place interaction failures turn into user-facing replies.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from core.errors import (
    GENERIC_ERROR_MESSAGE,
    BotError,
    DuplicateHandlerError,
    UnknownHandlerError,
)
from services.platform import Actor, OutboundMessage, Responder

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplicationCommandEvent:
    command_name: str
    subcommand_name: str
    actor: Actor
    guild_id: str
    channel_id: str
    responder: Responder
    options: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class ComponentEvent:
    custom_id: str
    actor: Actor
    guild_id: str
    channel_id: str
    responder: Responder


@dataclass(slots=True)
class UnknownEvent:
    kind: str
    responder: Responder
    actor: Actor | None = None
    guild_id: str = ""
    channel_id: str = ""


InboundEvent = ApplicationCommandEvent | ComponentEvent | UnknownEvent
TicketEvent = ApplicationCommandEvent | ComponentEvent

CommandProcessor = Callable[[ApplicationCommandEvent], Awaitable[None]]
CommandController = Callable[[ApplicationCommandEvent], Awaitable[CommandProcessor]]
ComponentProcessor = Callable[[ComponentEvent], Awaitable[None]]


class SubcommandRouter:
    """Command controller that picks a processor by sub-command name."""

    def __init__(
        self,
        command_name: str,
        processors: Iterable[tuple[str, CommandProcessor]],
        check: Callable[[ApplicationCommandEvent], None] | None = None,
    ) -> None:
        self.command_name = command_name
        self.check = check
        self.processors: dict[str, CommandProcessor] = {}
        for name, processor in processors:
            if name in self.processors:
                raise DuplicateHandlerError(f"Sub-command {command_name} {name} registered twice")
            self.processors[name] = processor

    async def __call__(self, event: ApplicationCommandEvent) -> CommandProcessor:
        if self.check is not None:
            self.check(event)
        try:
            return self.processors[event.subcommand_name]
        except KeyError:
            raise UnknownHandlerError(
                f"Unhandled sub-command {self.command_name} {event.subcommand_name!r}"
            ) from None


class HandlerRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, CommandController] = {}
        self._components: dict[str, ComponentProcessor] = {}
        self._definitions: dict[str, dict[str, Any]] = {}

    def add_command(
        self,
        name: str,
        controller: CommandController,
        definition: Mapping[str, Any] | None = None,
    ) -> None:
        if name in self._commands:
            raise DuplicateHandlerError(f"Command {name!r} registered twice")
        self._commands[name] = controller
        if definition is not None:
            self._definitions[name] = dict(definition)

    def add_component(self, custom_id: str, processor: ComponentProcessor) -> None:
        if custom_id in self._components:
            raise DuplicateHandlerError(f"Component {custom_id!r} registered twice")
        self._components[custom_id] = processor

    def command(self, name: str) -> CommandController:
        try:
            return self._commands[name]
        except KeyError:
            raise UnknownHandlerError(f"Unhandled command {name!r}") from None

    def component(self, custom_id: str) -> ComponentProcessor:
        try:
            return self._components[custom_id]
        except KeyError:
            raise UnknownHandlerError(f"Unhandled component {custom_id!r}") from None

    def command_definitions(self) -> list[dict[str, Any]]:
        """Payloads for Discord's bulk command overwrite endpoint."""
        return list(self._definitions.values())


def _describe(event: InboundEvent) -> dict[str, str]:
    match event:
        case ApplicationCommandEvent():
            kind, name = "command", f"{event.command_name} {event.subcommand_name}".strip()
        case ComponentEvent():
            kind, name = "component", event.custom_id
        case UnknownEvent():
            kind, name = "unknown", event.kind
    return {
        "kind": kind,
        "name": name,
        "guild": event.guild_id,
        "channel": event.channel_id,
        "user": event.actor.user_id if event.actor else "",
    }


class InteractionDispatcher:
    def __init__(self, registry: HandlerRegistry) -> None:
        self.registry = registry

    async def dispatch(self, event: InboundEvent) -> None:
        context = _describe(event)
        try:
            match event:
                case ApplicationCommandEvent():
                    controller = self.registry.command(event.command_name)
                    processor = await controller(event)
                    await processor(event)
                case ComponentEvent():
                    await self.registry.component(event.custom_id)(event)
                case UnknownEvent():
                    LOGGER.warning("Unhandled interaction type. type=%s", event.kind, extra={"interaction": context})
                    await self._reply_error(event, GENERIC_ERROR_MESSAGE, context)
        except BotError as exc:
            LOGGER.info(
                "Interaction rejected. kind=%s name=%s guild=%s user=%s reason=%s",
                context["kind"],
                context["name"],
                context["guild"],
                context["user"],
                type(exc).__name__,
                extra={"interaction": context},
            )
            await self._reply_error(event, exc.user_message, context)
        except Exception:
            LOGGER.exception(
                "Interaction failed. kind=%s name=%s guild=%s channel=%s user=%s",
                context["kind"],
                context["name"],
                context["guild"],
                context["channel"],
                context["user"],
                extra={"interaction": context},
            )
            await self._reply_error(event, GENERIC_ERROR_MESSAGE, context)

    @staticmethod
    async def _reply_error(event: InboundEvent, message: str, context: dict[str, str]) -> None:
        try:
            await event.responder.reply(OutboundMessage(content=message, ephemeral=True))
        except Exception:
            LOGGER.exception(
                "Could not send error reply. kind=%s name=%s guild=%s",
                context["kind"],
                context["name"],
                context["guild"],
                extra={"interaction": context},
            )
