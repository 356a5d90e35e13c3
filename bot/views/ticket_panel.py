from __future__ import annotations

from services.platform import ButtonStyle, ControlButton, OutboundMessage
from utils.constants import ENVELOPE_EMOJI, OPEN_TICKET_BUTTON_ID

INTAKE_MESSAGE = (
    "How can we help?\n"
    "Welcome to our tickets channel. If you have any questions or inquiries, "
    "please click on the button below to contact the staff by opening a ticket!"
)


def intake_message() -> OutboundMessage:
    """The public message with the button members press to open a ticket."""
    return OutboundMessage(
        content=INTAKE_MESSAGE,
        buttons=[
            ControlButton(
                custom_id=OPEN_TICKET_BUTTON_ID,
                label=f"{ENVELOPE_EMOJI} Open Ticket",
                style=ButtonStyle.PRIMARY,
            )
        ],
    )
