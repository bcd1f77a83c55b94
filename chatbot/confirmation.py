import logging
from datetime import datetime, timezone
from typing import Optional

from chatbot.chat_platform import ChatPlatform
from chatbot.ledger import PendingActionLedger
from chatbot.models import ConfirmationResult
from chatbot.storage import TicketRepository
from chatbot.ui import build_welcome_card, welcome_mentions

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Ticket creation request has expired or is invalid."
CANCELLED_MESSAGE = "Ticket creation has been cancelled."
CATEGORY_MISSING_MESSAGE = "The selected ticket category no longer exists."
CREATION_FAILED_MESSAGE = "An error occurred while creating the ticket."

TEMPORARY_CHANNEL_NAME = "ticket-new"


def ticket_channel_name(ticket_number: int) -> str:
    return f"ticket-{ticket_number:04d}"


class TicketConfirmationResolver:
    """
    Resolves the user's answer to a ticket confirmation prompt.

    The pending entry is removed from the ledger before anything else happens,
    so a confirmation can only ever be consumed once: a repeated click after a
    successful creation reports "expired" instead of opening a second ticket.
    """

    def __init__(self, ledger: PendingActionLedger, ticket_repo: TicketRepository, platform: Optional[ChatPlatform]):
        self.ledger = ledger
        self.ticket_repo = ticket_repo
        self.platform = platform

    def handle_ticket_confirmation(self, confirmation_id: str, confirmed: bool) -> ConfirmationResult:
        """
        Handle a ticket creation confirmation.

        Args:
            confirmation_id: Id shown on the confirmation prompt
            confirmed: Whether the user accepted

        Returns:
            ConfirmationResult with a user-facing message; ticket_channel is set
            when a ticket channel was created.
        """
        pending = self.ledger.delete(confirmation_id)
        if pending is None:
            return ConfirmationResult(success=False, message=EXPIRED_MESSAGE)

        if not confirmed:
            return ConfirmationResult(success=True, message=CANCELLED_MESSAGE)

        try:
            category = self.ticket_repo.get_ticket_category(pending.category_id)
            if category is None:
                return ConfirmationResult(success=False, message=CATEGORY_MISSING_MESSAGE)
            if self.platform is None:
                raise RuntimeError("No chat platform configured, set DISCORD_BOT_TOKEN")

            channel = self.platform.create_private_channel(
                guild_id=pending.guild_id,
                name=TEMPORARY_CHANNEL_NAME,
                parent_id=category.category_id,
                member_ids=[pending.user_id]
            )

            ticket = self.ticket_repo.create_ticket(
                pending.guild_id,
                pending.user_id,
                channel.id,
                pending.category_id
            )
        except Exception as e:
            logger.error(f"[TICKET_CONFIRMATION] Error handling ticket confirmation: {e}", exc_info=True)
            return ConfirmationResult(success=False, message=CREATION_FAILED_MESSAGE)

        # The ticket exists from here on; channel setup problems are not fatal.
        try:
            self.platform.rename_channel(channel.id, ticket_channel_name(ticket.ticket_number))
        except Exception as e:
            logger.warning(f"[TICKET_CONFIRMATION] Could not rename channel {channel.id}: {e}")

        if category.support_role_id:
            try:
                self.platform.grant_role_access(channel.id, category.support_role_id)
            except Exception as e:
                logger.warning(f"[TICKET_CONFIRMATION] Could not set permissions for support role: {e}")

        try:
            welcome_card = build_welcome_card(
                ticket,
                category,
                pending.user_id,
                pending.user_message,
                datetime.now(timezone.utc)
            )
            self.platform.send_message(channel.id, welcome_mentions(category, pending.user_id), welcome_card)
        except Exception as e:
            logger.warning(f"[TICKET_CONFIRMATION] Could not send welcome message to channel {channel.id}: {e}")

        logger.info(
            f"[TICKET_CONFIRMATION] Created ticket #{ticket.ticket_number} via AI assistant for user {pending.user_id}"
        )

        return ConfirmationResult(
            success=True,
            message=f"Ticket created successfully! Please check {channel.mention} for further assistance.",
            ticket_channel=channel.mention
        )
