"""
Platform-neutral message content produced by the chatbot.

The cards built here carry everything a chat platform needs to render the
ticket confirmation prompt and the welcome message of a new ticket channel.
DiscordPlatform (chat_platform.py) turns them into embeds and buttons.
"""

from datetime import datetime
from typing import Optional, Tuple

from chatbot.models import CardAction, CardField, MessageCard, Ticket, TicketCategory

CONFIRM_YES_PREFIX = "ticket_confirm_yes_"
CONFIRM_NO_PREFIX = "ticket_confirm_no_"
CLAIM_TICKET_ID = "ticket_claim"
CLOSE_TICKET_ID = "ticket_close"

PREVIEW_LENGTH = 100
DEFAULT_CONFIRMATION_MESSAGE = "I'd like to create a ticket to better assist you with your request."
DEFAULT_CATEGORY_EMOJI = "🎫"


def preview_text(text: str, length: int = PREVIEW_LENGTH) -> str:
    return text[:length] + "..." if len(text) > length else text


def build_confirmation_card(confirmation_id: str, tool_message: Optional[str], category_name: str, user_message: str) -> MessageCard:
    description = (
        f"{tool_message or DEFAULT_CONFIRMATION_MESSAGE}\n\n"
        f"**Category:** {category_name}\n"
        f"**Your message:** {preview_text(user_message)}"
    )
    return MessageCard(
        title="🎫 Create Ticket Confirmation",
        description=description,
        color="blue",
        footer="This will create a private support channel for you",
        actions=[
            CardAction(custom_id=f"{CONFIRM_YES_PREFIX}{confirmation_id}", label="Create Ticket", style="success", emoji="✅"),
            CardAction(custom_id=f"{CONFIRM_NO_PREFIX}{confirmation_id}", label="Cancel", style="secondary", emoji="❌")
        ]
    )


def parse_confirmation_custom_id(custom_id: str) -> Optional[Tuple[str, bool]]:
    """Return (confirmation_id, confirmed) for a confirmation button id, None for any other id."""
    if custom_id.startswith(CONFIRM_YES_PREFIX):
        return custom_id[len(CONFIRM_YES_PREFIX):], True
    if custom_id.startswith(CONFIRM_NO_PREFIX):
        return custom_id[len(CONFIRM_NO_PREFIX):], False
    return None


def default_welcome_message(category_name: str, user_message: str) -> str:
    return (
        f"Welcome to your ticket in the **{category_name}** category!\n\n"
        f"Original question: *{user_message}*\n\n"
        f"Please provide any additional details, and a staff member will assist you shortly."
    )


def build_welcome_card(ticket: Ticket, category: TicketCategory, user_id: str, user_message: str, created_at: datetime) -> MessageCard:
    welcome_message = category.welcome_message or default_welcome_message(category.name, user_message)
    creation_timestamp = int(created_at.timestamp())

    return MessageCard(
        title=f"Ticket #{ticket.ticket_number}",
        description=welcome_message,
        color="green",
        fields=[
            CardField(name="Ticket ID", value=f"#{ticket.ticket_number}"),
            CardField(name="Category", value=f"{category.emoji or DEFAULT_CATEGORY_EMOJI} {category.name}"),
            CardField(name="Status", value="🟢 Open"),
            CardField(name="Created By", value=f"<@{user_id}>"),
            CardField(name="Created At", value=f"<t:{creation_timestamp}:F>")
        ],
        footer=f"Use /ticket close to close this ticket | ID: {ticket.id}",
        timestamp=created_at,
        actions=[
            CardAction(custom_id=CLAIM_TICKET_ID, label="Claim Ticket", style="primary", emoji="👋"),
            CardAction(custom_id=CLOSE_TICKET_ID, label="Close Ticket", style="danger", emoji="🔒")
        ]
    )


def welcome_mentions(category: TicketCategory, user_id: str) -> str:
    if category.include_support_team and category.support_role_id:
        return f"<@{user_id}> | <@&{category.support_role_id}>"
    return f"<@{user_id}>"
