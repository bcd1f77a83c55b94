from datetime import datetime
from typing import Annotated, Optional, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator #for defining the data and request/response models


#for defining the per-channel chatbot configuration
class ChatbotConfig(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    guild_id: str
    channel_id: str
    chatbot_name: str
    response_type: Optional[str] = None
    model_name: str
    api_key: str
    base_url: Optional[str] = None


#for defining a single persisted conversation turn
class HistoryTurn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


#for defining a retrieved context chunk
class ContextChunk(BaseModel):
    content: str
    similarity: float = 0.0


#for defining a ticket category
class TicketCategory(BaseModel):
    id: str
    guild_id: str
    name: str
    is_enabled: bool = True
    support_role_id: Optional[str] = None
    emoji: Optional[str] = None
    category_id: str
    welcome_message: Optional[str] = None
    include_support_team: bool = False

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Category name cannot be empty")
        return v.strip()


#for defining the {id, name} projection exposed to the model as tool choices
class TicketCategoryChoice(BaseModel):
    id: str
    name: str


#for defining a persisted ticket
class Ticket(BaseModel):
    id: str
    guild_id: str
    creator_id: str
    channel_id: str
    category_id: str
    ticket_number: int
    status: str = "open"
    created_at: datetime


#for defining a ticket creation waiting for user confirmation
class PendingTicketCreation(BaseModel):
    confirmation_id: str
    category_id: str
    user_message: str
    guild_id: str
    channel_id: str
    user_id: str
    tool_message: str


#for defining platform-neutral message content (rendered by the platform adapter)
class CardField(BaseModel):
    name: str
    value: str
    inline: bool = True


class CardAction(BaseModel):
    custom_id: str
    label: str
    style: Literal["primary", "secondary", "success", "danger"] = "secondary"
    emoji: Optional[str] = None


class MessageCard(BaseModel):
    title: str
    description: str
    color: Literal["blue", "green"] = "blue"
    fields: List[CardField] = Field(default_factory=list)
    footer: Optional[str] = None
    timestamp: Optional[datetime] = None
    actions: List[CardAction] = Field(default_factory=list)


#for defining the outcome of one turn
class ToolTriggered(BaseModel):
    kind: Literal["tool_triggered"] = "tool_triggered"
    confirmation_id: str
    category_name: str
    tool_message: str
    user_message_preview: str
    confirmation: MessageCard


class PlainResponse(BaseModel):
    kind: Literal["plain_response"] = "plain_response"
    response: str


class Failed(BaseModel):
    kind: Literal["failed"] = "failed"
    reason: str


TurnResult = Annotated[Union[ToolTriggered, PlainResponse, Failed], Field(discriminator="kind")]


#for defining the outcome of a ticket confirmation
class ConfirmationResult(BaseModel):
    success: bool
    message: str
    ticket_channel: Optional[str] = None


#for defining the HTTP request and response models
class ChatMessageRequest(BaseModel):
    channel_id: str = Field(..., min_length=1, max_length=32)
    user_id: str = Field(..., min_length=1, max_length=32)
    content: str = Field(..., min_length=1, max_length=6000, description="The user's message")

    @field_validator('content')
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message cannot be empty")
        return v.strip()


class ChatMessageResponse(BaseModel):
    trace_id: str
    result: TurnResult
    chunks: List[str] = Field(default_factory=list)


class ConfirmationRequest(BaseModel):
    confirmation_id: str = Field(..., min_length=1)
    confirmed: bool


class ButtonInteractionRequest(BaseModel):
    custom_id: str = Field(..., min_length=1, max_length=100)


class DocumentRequest(BaseModel):
    text: str = Field(..., min_length=1)


class DocumentResponse(BaseModel):
    chunks: int


class ClearHistoryResponse(BaseModel):
    cleared: bool


class HealthResponse(BaseModel):
    status: str
