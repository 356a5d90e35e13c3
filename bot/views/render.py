from __future__ import annotations

import discord

from services.platform import ButtonStyle, ControlButton


def render_view(buttons: list[ControlButton]) -> discord.ui.View:
    """Build a stateless view for ``buttons``.

    The view is stopped before it is sent so discord.py never stores it for
    callbacks; clicks reach ``on_interaction`` and the dispatcher instead.
    """
    view = discord.ui.View(timeout=None)
    for button in buttons:
        view.add_item(
            discord.ui.Button(
                custom_id=button.custom_id,
                label=button.label,
                style=getattr(discord.ButtonStyle, button.style.value),
                disabled=button.disabled,
            )
        )
    view.stop()
    return view


def read_buttons(message: discord.Message) -> list[ControlButton]:
    buttons: list[ControlButton] = []
    for row in message.components:
        for component in getattr(row, "children", []):
            if not isinstance(component, discord.Button) or not component.custom_id:
                continue
            try:
                style = ButtonStyle(component.style.name)
            except ValueError:
                style = ButtonStyle.SECONDARY
            buttons.append(
                ControlButton(
                    custom_id=component.custom_id,
                    label=component.label or "",
                    style=style,
                    disabled=component.disabled,
                )
            )
    return buttons
