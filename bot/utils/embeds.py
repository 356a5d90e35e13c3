from __future__ import annotations

from datetime import UTC, datetime

import discord

from services.platform import EmbedSpec

# Discord rejects embeds beyond these sizes.
MAX_TITLE = 256
MAX_DESCRIPTION = 4096
MAX_FIELDS = 25
MAX_FIELD_NAME = 256
MAX_FIELD_VALUE = 1024


def clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def render_embed(spec: EmbedSpec) -> discord.Embed:
    embed = discord.Embed(
        title=clip(spec.title, MAX_TITLE),
        description=clip(spec.description, MAX_DESCRIPTION),
        color=spec.color,
        timestamp=datetime.now(UTC),
    )
    for item in spec.fields[:MAX_FIELDS]:
        embed.add_field(
            name=clip(item.name, MAX_FIELD_NAME),
            value=clip(item.value, MAX_FIELD_VALUE),
            inline=item.inline,
        )
    return embed
