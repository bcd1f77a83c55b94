import json
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from chatbot.confirmation import TicketConfirmationResolver
from chatbot.history import ChatHistory
from chatbot.ledger import PendingActionLedger
from chatbot.llm import LLM
from chatbot.models import (
    ChatbotConfig,
    ConfirmationResult,
    Failed,
    PendingTicketCreation,
    PlainResponse,
    TicketCategoryChoice,
    ToolTriggered,
)
from chatbot.prompts import build_system_prompt
from chatbot.rag import ContextRetriever
from chatbot.storage import ChatbotConfigRepository, TicketRepository
from chatbot.tools import CREATE_TICKET_TOOL_NAME, create_dynamic_ticket_tool, resolve_category
from chatbot.ui import build_confirmation_card, preview_text

logger = logging.getLogger(__name__)

TOOL_STAGE_TEMPERATURE = 0.3
RESPONSE_STAGE_TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 2000
DEFAULT_TOOL_MESSAGE = "A ticket will be created to assist you with your request."

HistoryFactory = Callable[[str, str], ChatHistory]
LLMFactory = Callable[[ChatbotConfig], LLM]


class ChatbotService:
    """
    Handles chatbot turns with RAG context and ticket tool support.

    One user message runs through at most two LLM calls:
    1. Tool stage (only when the guild has enabled ticket categories): the
       create_ticket tool is offered. If the model calls it with a known
       category, a pending creation is recorded and the user is asked to
       confirm; no text reply is generated.
    2. Response stage: a plain completion without tools.

    Every failure is logged and reported as a Failed result; nothing is
    persisted for a failed turn.
    """

    def __init__(
        self,
        config_repo: ChatbotConfigRepository,
        ticket_repo: TicketRepository,
        retriever: ContextRetriever,
        history_factory: HistoryFactory,
        confirmation_resolver: TicketConfirmationResolver,
        ledger: PendingActionLedger,
        llm_factory: LLMFactory = LLM.from_config
    ):
        self.config_repo = config_repo
        self.ticket_repo = ticket_repo
        self.retriever = retriever
        self.history_factory = history_factory
        self.confirmation_resolver = confirmation_resolver
        self.ledger = ledger
        self.llm_factory = llm_factory

    def get_config_by_channel_id(self, channel_id: str) -> Optional[ChatbotConfig]:
        try:
            return self.config_repo.get_config_by_channel_id(channel_id)
        except Exception as e:
            logger.error(f"[CHATBOT_SERVICE] Error finding config by channel ID: {e}")
            return None

    def search_rag_context(self, query: str, guild_id: str) -> Optional[str]:
        try:
            return self.retriever.search_context(query, guild_id)
        except Exception as e:
            logger.error(f"[CHATBOT_SERVICE] Error searching RAG context: {e}")
            return None

    def get_ticket_categories(self, guild_id: str) -> List[TicketCategoryChoice]:
        try:
            categories = self.ticket_repo.get_ticket_categories(guild_id)
        except Exception as e:
            logger.error(f"[CHATBOT_SERVICE] Error getting ticket categories: {e}")
            return []
        return [TicketCategoryChoice(id=cat.id, name=cat.name) for cat in categories if cat.is_enabled]

    @staticmethod
    def _build_messages(system_prompt: str, chat_history: ChatHistory, user_message: str) -> List[Dict[str, Any]]:
        history = [turn for turn in chat_history.get_history() if turn.role != "system"]
        return [
            {"role": "system", "content": system_prompt},
            *({"role": turn.role, "content": turn.content} for turn in history),
            {"role": "user", "content": user_message}
        ]

    def process_message(
        self,
        user_message: str,
        user_id: str,
        config: ChatbotConfig,
        channel_id: str
    ) -> Union[ToolTriggered, PlainResponse, Failed]:
        """
        Process a user message with the two-stage LLM invocation.

        Args:
            user_message: The user's message content
            user_id: Discord user ID
            config: Chatbot configuration of the channel
            channel_id: Discord channel ID

        Returns:
            ToolTriggered when the user must confirm a ticket creation,
            PlainResponse with the generated text, or Failed.
        """
        try:
            llm = self.llm_factory(config)
            chat_history = self.history_factory(user_id, config.guild_id)

            rag_context = self.search_rag_context(user_message, config.guild_id)
            categories = self.get_ticket_categories(config.guild_id)

            if categories:
                triggered = self._run_tool_stage(llm, chat_history, config, rag_context, categories, user_message, user_id, channel_id)
                if triggered is not None:
                    return triggered

            return self._run_response_stage(llm, chat_history, config, rag_context, user_message)

        except Exception as e:
            logger.error(f"[CHATBOT_SERVICE] Error processing message: {e}", exc_info=True)
            return Failed(reason=str(e))

    def _run_tool_stage(
        self,
        llm: LLM,
        chat_history: ChatHistory,
        config: ChatbotConfig,
        rag_context: Optional[str],
        categories: List[TicketCategoryChoice],
        user_message: str,
        user_id: str,
        channel_id: str
    ) -> Optional[ToolTriggered]:
        """Offer the create_ticket tool; returns None when the turn should continue as a plain reply."""
        system_prompt = build_system_prompt(config, rag_context, include_tools=True)
        messages = self._build_messages(system_prompt, chat_history, user_message)

        response = llm.invoke(
            messages,
            config.model_name,
            max_tokens=MAX_OUTPUT_TOKENS,
            temperature=TOOL_STAGE_TEMPERATURE,
            tools=create_dynamic_ticket_tool(categories),
            tool_choice="auto"
        )

        message = response.choices[0].message if response.choices else None
        tool_calls = getattr(message, "tool_calls", None) if message is not None else None
        if not tool_calls:
            return None

        tool_call = tool_calls[0]
        if tool_call.function.name != CREATE_TICKET_TOOL_NAME:
            logger.warning(f"[CHATBOT_SERVICE] Ignoring unknown tool call: {tool_call.function.name}")
            return None

        try:
            args = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            logger.warning(f"[CHATBOT_SERVICE] Malformed create_ticket arguments, answering normally: {e}")
            return None
        if not isinstance(args, dict):
            logger.warning("[CHATBOT_SERVICE] create_ticket arguments are not an object, answering normally")
            return None

        category_name = args.get("ticket_category")
        selected_category = resolve_category(category_name, categories)
        if selected_category is None:
            logger.warning(f"[CHATBOT_SERVICE] Model chose unknown ticket category '{category_name}', answering normally")
            return None

        message = args.get("message")
        tool_message = message if isinstance(message, str) and message.strip() else DEFAULT_TOOL_MESSAGE
        confirmation_id = self.ledger.new_confirmation_id(user_id)
        try:
            pending = PendingTicketCreation(
                confirmation_id=confirmation_id,
                category_id=selected_category.id,
                user_message=user_message,
                guild_id=config.guild_id,
                channel_id=channel_id,
                user_id=user_id,
                tool_message=tool_message
            )
        except ValidationError as e:
            logger.warning(f"[CHATBOT_SERVICE] Could not record ticket confirmation, answering normally: {e}")
            return None

        self.ledger.put(confirmation_id, pending)
        self.ledger.sweep_expired()

        try:
            chat_history.add_turn(user_message, f"[Ticket creation requested for: {selected_category.name}]")
        except Exception:
            #no pending confirmation without its history entry
            self.ledger.delete(confirmation_id)
            raise

        logger.info(f"[CHATBOT_SERVICE] Ticket confirmation {confirmation_id} requested for category {selected_category.name}")

        return ToolTriggered(
            confirmation_id=confirmation_id,
            category_name=selected_category.name,
            tool_message=tool_message,
            user_message_preview=preview_text(user_message),
            confirmation=build_confirmation_card(confirmation_id, tool_message, selected_category.name, user_message)
        )

    def _run_response_stage(
        self,
        llm: LLM,
        chat_history: ChatHistory,
        config: ChatbotConfig,
        rag_context: Optional[str],
        user_message: str
    ) -> Union[PlainResponse, Failed]:
        system_prompt = build_system_prompt(config, rag_context, include_tools=False)
        messages = self._build_messages(system_prompt, chat_history, user_message)

        response = llm.invoke(
            messages,
            config.model_name,
            max_tokens=MAX_OUTPUT_TOKENS,
            temperature=RESPONSE_STAGE_TEMPERATURE
        )

        message = response.choices[0].message if response.choices else None
        assistant_message = getattr(message, "content", None) if message is not None else None

        if not assistant_message or not assistant_message.strip():
            logger.error("[CHATBOT_SERVICE] No response content from LLM")
            return Failed(reason="No response content from LLM")

        chat_history.add_turn(user_message, assistant_message)
        return PlainResponse(response=assistant_message)

    def handle_ticket_confirmation(self, confirmation_id: str, confirmed: bool) -> ConfirmationResult:
        return self.confirmation_resolver.handle_ticket_confirmation(confirmation_id, confirmed)

    def clear_user_history(self, user_id: str, guild_id: str) -> bool:
        try:
            self.history_factory(user_id, guild_id).clear_history(keep_system_messages=False)
            return True
        except Exception as e:
            logger.error(f"[CHATBOT_SERVICE] Error clearing user history: {e}")
            return False
