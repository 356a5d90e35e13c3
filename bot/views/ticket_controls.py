from __future__ import annotations

from database.models import TicketRecord
from services.platform import ButtonStyle, ControlButton, EmbedField, EmbedSpec, OutboundMessage
from utils.constants import (
    CLAIM_EMOJI,
    CLAIM_TICKET_BUTTON_ID,
    CLOSE_EMOJI,
    CLOSE_TICKET_BUTTON_ID,
    COLOR_DANGER,
    COLOR_SUCCESS,
    DELETE_CONFIRMATION_BUTTON_ID,
    DELETE_EMOJI,
    DELETE_TICKET_BUTTON_ID,
    REOPEN_EMOJI,
    REOPEN_TICKET_BUTTON_ID,
    WASTE_BASKET_EMOJI,
)

NEW_TICKET_MESSAGE = (
    "Your ticket has been created.\n"
    "Please provide any additional info you deem relevant to help us answer faster."
)


def control_buttons(ticket: TicketRecord) -> list[ControlButton]:
    """Buttons on the pinned control message, enabled according to the ticket's state.

    Open: claim, close and delete. Claimed: close and delete. Closed: reopen only.
    """
    closed = ticket.is_closed
    return [
        ControlButton(
            custom_id=CLAIM_TICKET_BUTTON_ID,
            label=f"{CLAIM_EMOJI} Claim",
            style=ButtonStyle.PRIMARY,
            disabled=closed or ticket.is_claimed,
        ),
        ControlButton(
            custom_id=CLOSE_TICKET_BUTTON_ID,
            label=f"{CLOSE_EMOJI} Close",
            style=ButtonStyle.SECONDARY,
            disabled=closed,
        ),
        ControlButton(
            custom_id=REOPEN_TICKET_BUTTON_ID,
            label=f"{REOPEN_EMOJI} Reopen",
            style=ButtonStyle.SUCCESS,
            disabled=not closed,
        ),
        ControlButton(
            custom_id=DELETE_TICKET_BUTTON_ID,
            label=f"{DELETE_EMOJI} Delete",
            style=ButtonStyle.DANGER,
            disabled=closed,
        ),
    ]


def control_message(ticket: TicketRecord) -> OutboundMessage:
    return OutboundMessage(content=NEW_TICKET_MESSAGE, buttons=control_buttons(ticket))


def ticket_created_reply(ticket: TicketRecord, category_name: str) -> OutboundMessage:
    embed = EmbedSpec(
        title="Ticket Created",
        description=(
            f"<@{ticket.user_id}>, you created a ticket and it has been moved to the "
            f"**{category_name}** category."
        ),
        color=COLOR_SUCCESS,
        fields=[
            EmbedField(name="Ticket Name", value=ticket.name),
            EmbedField(name="Ticket Channel", value=f"<#{ticket.channel_id}>"),
        ],
    )
    return OutboundMessage(embed=embed, ephemeral=True)


def delete_confirmation_prompt() -> OutboundMessage:
    return OutboundMessage(
        embed=EmbedSpec(
            title="Please confirm",
            description="Are you sure you want to delete this ticket?",
            color=COLOR_DANGER,
        ),
        buttons=[
            ControlButton(
                custom_id=DELETE_CONFIRMATION_BUTTON_ID,
                label=f"{WASTE_BASKET_EMOJI} Proceed",
                style=ButtonStyle.DANGER,
            )
        ],
        ephemeral=True,
    )
