"""Remote chat-platform interface used by the ticket core.

The core never touches discord.py objects directly. It talks to a
:class:`Platform` (REST-style calls that may fail) and answers interactions
through a :class:`Responder`. :mod:`services.discord_platform` provides the
discord.py implementation; tests use an in-memory fake.

Failures are reported as :class:`core.errors.RemoteNotFoundError` when the
target does not exist and :class:`core.errors.UpstreamError` otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol


class ButtonStyle(StrEnum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SUCCESS = "success"
    DANGER = "danger"


class ChannelKind(StrEnum):
    TEXT = "text"
    CATEGORY = "category"
    OTHER = "other"


class OverwriteTarget(StrEnum):
    ROLE = "role"
    MEMBER = "member"


@dataclass(slots=True, frozen=True)
class Actor:
    user_id: str
    username: str
    role_ids: frozenset[str] = frozenset()
    is_admin: bool = False

    def has_role(self, role_id: str) -> bool:
        return bool(role_id) and role_id in self.role_ids

    @property
    def mention(self) -> str:
        return f"<@{self.user_id}>"


@dataclass(slots=True)
class ControlButton:
    custom_id: str
    label: str
    style: ButtonStyle = ButtonStyle.PRIMARY
    disabled: bool = False


@dataclass(slots=True)
class EmbedField:
    name: str
    value: str
    inline: bool = True


@dataclass(slots=True)
class EmbedSpec:
    title: str
    description: str
    color: int
    fields: list[EmbedField] = field(default_factory=list)


@dataclass(slots=True)
class OutboundMessage:
    content: str = ""
    embed: EmbedSpec | None = None
    buttons: list[ControlButton] = field(default_factory=list)
    ephemeral: bool = False


@dataclass(slots=True, frozen=True)
class PermissionRule:
    """Channel visibility for one role or member.

    ``allow=False`` hides the channel entirely, ``allow=True`` grants the text
    permissions except mentioning everyone.
    """

    target_id: str
    target: OverwriteTarget
    allow: bool


@dataclass(slots=True)
class RemoteChannel:
    id: str
    name: str
    kind: ChannelKind
    parent_id: str = ""
    topic: str = ""


@dataclass(slots=True)
class RemoteMessage:
    id: str
    channel_id: str
    content: str = ""
    buttons: list[ControlButton] = field(default_factory=list)


class Platform(Protocol):
    async def fetch_channel(self, channel_id: str) -> RemoteChannel: ...

    async def create_category(
        self, guild_id: str, name: str, rules: list[PermissionRule]
    ) -> RemoteChannel: ...

    async def create_text_channel(
        self,
        guild_id: str,
        name: str,
        *,
        parent_id: str,
        topic: str,
        rules: list[PermissionRule],
    ) -> RemoteChannel: ...

    async def edit_channel(
        self,
        channel_id: str,
        *,
        name: str | None = None,
        parent_id: str | None = None,
        topic: str | None = None,
    ) -> None: ...

    async def delete_channel(self, channel_id: str) -> None: ...

    async def send_message(self, channel_id: str, message: OutboundMessage) -> RemoteMessage: ...

    async def fetch_message(self, channel_id: str, message_id: str) -> RemoteMessage: ...

    async def edit_message(self, channel_id: str, message_id: str, message: OutboundMessage) -> None: ...

    async def pin_message(self, channel_id: str, message_id: str) -> None: ...

    def is_ready(self) -> bool: ...


class Responder(Protocol):
    """Answers a single interaction. The first reply acknowledges it, later ones follow up."""

    @property
    def is_done(self) -> bool: ...

    async def reply(self, message: OutboundMessage) -> None: ...


def staff_visibility(guild_id: str, role_id: str, creator_id: str) -> list[PermissionRule]:
    # On Discord the @everyone role shares the guild's id.
    return [
        PermissionRule(target_id=guild_id, target=OverwriteTarget.ROLE, allow=False),
        PermissionRule(target_id=creator_id, target=OverwriteTarget.MEMBER, allow=True),
        PermissionRule(target_id=role_id, target=OverwriteTarget.ROLE, allow=True),
    ]
