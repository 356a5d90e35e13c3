from __future__ import annotations

from dataclasses import dataclass

GENERIC_ERROR_MESSAGE = "There was an error processing your request. Please try again later."


class BotError(RuntimeError):
    user_message: str = "An unexpected error occurred."


@dataclass(slots=True, eq=False)
class PermissionDeniedError(BotError):
    user_message: str = "You do not have permission to run this action."


@dataclass(slots=True, eq=False)
class AlreadyClaimedError(PermissionDeniedError):
    user_message: str = "This ticket is already claimed by another staff member."


@dataclass(slots=True, eq=False)
class AlreadyInStateError(BotError):
    user_message: str = "The ticket is already in that state."


@dataclass(slots=True, eq=False)
class TicketNotFoundError(BotError):
    user_message: str = "This channel is not an active ticket."


@dataclass(slots=True, eq=False)
class TicketingNotConfiguredError(BotError):
    user_message: str = "Ticketing is not enabled for this server."


@dataclass(slots=True, eq=False)
class ValidationError(BotError):
    user_message: str = "The provided input is not valid."


class DispatchError(RuntimeError):
    pass


class DuplicateHandlerError(DispatchError):
    pass


class UnknownHandlerError(DispatchError):
    pass


class UpstreamError(RuntimeError):
    """A chat platform call failed for a reason other than a missing resource."""


class RemoteNotFoundError(UpstreamError):
    """The chat platform reported that a channel, message or member does not exist."""


class PersistenceError(RuntimeError):
    pass
