from __future__ import annotations

# Component custom ids. These are persisted on Discord messages, so renaming one
# orphans every button already posted.
OPEN_TICKET_BUTTON_ID = "open_ticket_button"
CLAIM_TICKET_BUTTON_ID = "claim_ticket_button"
CLOSE_TICKET_BUTTON_ID = "close_ticket_button"
REOPEN_TICKET_BUTTON_ID = "reopen_ticket_button"
DELETE_TICKET_BUTTON_ID = "delete_ticket_button"
DELETE_CONFIRMATION_BUTTON_ID = "delete_confirmation_button"

SETUP_COMMAND_NAME = "setup"
ENABLE_TICKETING_SUBCOMMAND = "ticketing_enable"
DISABLE_TICKETING_SUBCOMMAND = "ticketing_disable"
CHANNEL_OPTION = "channel"
ROLE_OPTION = "role"

TICKET_COMMAND_NAME = "ticket"
CLAIM_SUBCOMMAND = "claim"
CLOSE_SUBCOMMAND = "close"
DELETE_SUBCOMMAND = "delete"
REOPEN_SUBCOMMAND = "reopen"

ENVELOPE_EMOJI = "\U0001F4E9"
CLAIM_EMOJI = "\U0001F3AB"
CLOSE_EMOJI = "\U0001F510"
REOPEN_EMOJI = "\U0001F513"
DELETE_EMOJI = "❌"
WASTE_BASKET_EMOJI = "\U0001F5D1"

COLOR_SUCCESS = 0x00FF00
COLOR_DANGER = 0xED4245
