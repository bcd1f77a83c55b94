import time
import uuid #for generating unique identifiers
import logging #for logging messages
import sqlite3
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from openai import APIError, OpenAIError, APITimeoutError #for handling errors from the OpenAI API

from chatbot.chat_platform import DiscordPlatform
from chatbot.chunking import split_response
from chatbot.confirmation import TicketConfirmationResolver
from chatbot.config import Settings, load_settings
from chatbot.history import ChatHistory
from chatbot.ledger import PendingActionLedger
from chatbot.llm import Embedding
from chatbot.models import (
    ButtonInteractionRequest,
    ChatbotConfig,
    ChatMessageRequest,
    ChatMessageResponse,
    ClearHistoryResponse,
    ConfirmationRequest,
    ConfirmationResult,
    DocumentRequest,
    DocumentResponse,
    HealthResponse,
    PlainResponse,
    Ticket,
    TicketCategory,
)
from chatbot.rag import ContextRetriever, RagRepository
from chatbot.service import ChatbotService
from chatbot.storage import ChatbotConfigRepository, TicketRepository, init_db
from chatbot.ui import parse_confirmation_custom_id

settings = load_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Chatbot Service",
    version="1.0.0",
    description="RAG chatbot for Discord with AI-assisted ticket creation"
)


def build_service(settings: Settings) -> ChatbotService:
    """Wire the chatbot service from settings."""
    embedder: Optional[Embedding] = None
    if settings.openai_api_key:
        embedder = Embedding(
            settings.openai_api_key,
            settings.embedding_model,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.openai_timeout_seconds
        )
    else:
        logger.warning("OPENAI_API_KEY not set - RAG context retrieval is disabled")

    platform: Optional[DiscordPlatform] = None
    if settings.discord_bot_token:
        platform = DiscordPlatform(
            settings.discord_bot_token,
            api_base=settings.discord_api_base,
            timeout_seconds=settings.discord_timeout_seconds
        )
    else:
        logger.warning("DISCORD_BOT_TOKEN not set - confirmed tickets cannot be created")

    init_db(settings.database_path)
    ticket_repo = TicketRepository(settings.database_path)
    ledger = PendingActionLedger()

    def history_factory(user_id: str, guild_id: str) -> ChatHistory:
        return ChatHistory(settings.database_path, user_id, guild_id, settings.chat_history_limit)

    return ChatbotService(
        config_repo=ChatbotConfigRepository(settings.database_path),
        ticket_repo=ticket_repo,
        retriever=ContextRetriever(RagRepository(settings.database_path), embedder, settings.rag_top_k),
        history_factory=history_factory,
        confirmation_resolver=TicketConfirmationResolver(ledger, ticket_repo, platform),
        ledger=ledger
    )


# Initialize the chatbot service
try:
    chatbot_service: Optional[ChatbotService] = build_service(settings)
except (ValueError, sqlite3.Error) as e:
    logger.error(f"Failed to initialize chatbot service: {e}")
    chatbot_service = None


def get_service() -> ChatbotService:
    if chatbot_service is None:
        raise HTTPException(
            status_code=503,
            detail="Chatbot service not initialized. Check the DATABASE_PATH environment variable."
        )
    return chatbot_service


@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": "Chatbot Service",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "health": "/health",
            "message": "/v1/chat/message",
            "confirm": "/v1/tickets/confirm",
            "button": "/v1/interactions/button",
            "history": "/v1/chat/history",
            "tickets": "/v1/tickets",
            "documents": "/v1/rag/{guild_id}/documents",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health() -> HealthResponse:
    """Health check endpoint"""
    return HealthResponse(status="ok")


@app.post("/v1/chat/message", response_model=ChatMessageResponse)
def chat_message(request: ChatMessageRequest, service: ChatbotService = Depends(get_service)) -> ChatMessageResponse:
    """
    Process one user message posted in a chatbot channel.

    Returns the turn result and, for plain responses, the reply split into
    Discord-sized chunks.
    """
    trace_id = str(uuid.uuid4())
    start_time = time.time()

    logger.info(f"trace_id={trace_id} - Received message: channel={request.channel_id}, user={request.user_id}")

    config = service.get_config_by_channel_id(request.channel_id)
    if config is None:
        raise HTTPException(status_code=404, detail=f"No chatbot configured for channel {request.channel_id}")

    try:
        result = service.process_message(request.content, request.user_id, config, request.channel_id)
    except Exception as e: #for handling unexpected exceptions
        latency_ms = int((time.time() - start_time) * 1000)
        logger.error(f"trace_id={trace_id} - Error: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "trace_id": trace_id,
                "error": str(e),
                "latency_ms": latency_ms
            }
        )

    chunks = split_response(result.response) if isinstance(result, PlainResponse) else []

    latency_ms = int((time.time() - start_time) * 1000)
    logger.info(f"trace_id={trace_id} - result={result.kind}, chunks={len(chunks)}, latency_ms={latency_ms}")

    return ChatMessageResponse(trace_id=trace_id, result=result, chunks=chunks)


@app.post("/v1/tickets/confirm", response_model=ConfirmationResult)
def confirm_ticket(request: ConfirmationRequest, service: ChatbotService = Depends(get_service)) -> ConfirmationResult:
    """Accept or cancel a pending ticket creation."""
    return service.handle_ticket_confirmation(request.confirmation_id, request.confirmed)


@app.post("/v1/interactions/button", response_model=ConfirmationResult)
def button_interaction(request: ButtonInteractionRequest, service: ChatbotService = Depends(get_service)) -> ConfirmationResult:
    """Resolve a click on one of the confirmation prompt buttons."""
    parsed = parse_confirmation_custom_id(request.custom_id)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"Not a ticket confirmation button: {request.custom_id}")
    confirmation_id, confirmed = parsed
    return service.handle_ticket_confirmation(confirmation_id, confirmed)


@app.delete("/v1/chat/history", response_model=ClearHistoryResponse)
def clear_history(user_id: str, guild_id: str, service: ChatbotService = Depends(get_service)) -> ClearHistoryResponse:
    return ClearHistoryResponse(cleared=service.clear_user_history(user_id, guild_id))


@app.put("/v1/chatbot/configs", response_model=ChatbotConfig)
def upsert_chatbot_config(config: ChatbotConfig, service: ChatbotService = Depends(get_service)) -> ChatbotConfig:
    return service.config_repo.upsert_config(config)


@app.put("/v1/ticket-categories", response_model=TicketCategory)
def upsert_ticket_category(category: TicketCategory, service: ChatbotService = Depends(get_service)) -> TicketCategory:
    return service.ticket_repo.upsert_ticket_category(category)


@app.get("/v1/tickets", response_model=List[Ticket])
def list_tickets(guild_id: str, service: ChatbotService = Depends(get_service)) -> List[Ticket]:
    """Tickets of a guild ordered by ticket number."""
    return service.ticket_repo.get_tickets(guild_id)


@app.post("/v1/rag/{guild_id}/documents", response_model=DocumentResponse)
def add_document(guild_id: str, request: DocumentRequest, service: ChatbotService = Depends(get_service)) -> DocumentResponse:
    """Split, embed and store a knowledge document for a guild."""
    try:
        stored = service.retriever.ingest_document(guild_id, request.text, chunk_size=settings.rag_chunk_size)
    except ValueError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except APITimeoutError as e:
        logger.error(f"Embedding timeout for guild {guild_id}: {e}", exc_info=True)
        raise HTTPException(status_code=504, detail=f"Request timeout: {str(e)}")
    except (APIError, OpenAIError) as e:
        logger.error(f"Embedding error for guild {guild_id}: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail=str(e))
    return DocumentResponse(chunks=stored)


@app.delete("/v1/rag/{guild_id}/documents", response_model=DocumentResponse)
def delete_documents(guild_id: str, service: ChatbotService = Depends(get_service)) -> DocumentResponse:
    """Remove every knowledge chunk of a guild; returns how many were deleted."""
    return DocumentResponse(chunks=service.retriever.repository.delete_guild_data(guild_id))


if __name__ == "__main__":
    import uvicorn #for running the FastAPI application
    uvicorn.run(app, host="127.0.0.1", port=8000)
