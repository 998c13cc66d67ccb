"""
Assistant Schema Definitions

Pydantic models for the context-aware chat pipeline, organized by stage:
- Query classification
- Chat messages and their metadata
- Dispatcher results
- API request/response models (chat endpoint and callable proxy)
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from product_hub.core.config import ModelParameters


class QueryType(str, Enum):
    """Coarse intent labels, in classification priority order."""

    PRODUCT_ANALYSIS = "product_analysis"
    COVERAGE_ANALYSIS = "coverage_analysis"
    PRICING_ANALYSIS = "pricing_analysis"
    COMPLIANCE_CHECK = "compliance_check"
    TASK_MANAGEMENT = "task_management"
    STRATEGIC_INSIGHT = "strategic_insight"
    DATA_QUERY = "data_query"
    CLAIMS_ANALYSIS = "claims_analysis"
    FORM_ANALYSIS = "form_analysis"
    GENERAL = "general"


class PipelineState(str, Enum):
    IDLE = "idle"
    BUILDING_CONTEXT = "building_context"
    AWAITING_RESPONSE = "awaiting_response"
    RENDERING = "rendering"
    ERROR = "error"


ChatRole = Literal["system", "user", "assistant"]


class ProviderMessage(BaseModel):
    """A single {role, content} entry sent to the chat-completion endpoint."""

    role: ChatRole
    content: str


class MessageMetadata(BaseModel):
    """Optional annotations carried by a chat message."""

    query_type: Optional[QueryType] = None
    tokens_used: Optional[int] = None
    processing_time_ms: Optional[int] = None
    confidence: Optional[float] = None
    model: Optional[str] = None
    error_kind: Optional[str] = Field(
        default=None, description="rate_limited | auth | timeout | empty | generic"
    )


class ChatMessage(BaseModel):
    """Ephemeral conversation entry; never persisted."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Optional[MessageMetadata] = None

    @property
    def is_error(self) -> bool:
        return bool(self.metadata and self.metadata.error_kind)


class CompletionResult(BaseModel):
    """Assistant text and usage returned by a transport."""

    content: str
    total_tokens: Optional[int] = None
    model: Optional[str] = None
    usage: dict[str, Any] = Field(default_factory=dict)


class FormattedResponse(BaseModel):
    """Rendered assistant reply."""

    markdown: str
    html: str
    truncated: bool = False
    structure: dict[str, int] = Field(default_factory=dict)


class BuiltPrompt(BaseModel):
    """System prompt plus the message list ready for dispatch."""

    query_type: QueryType
    system_prompt: str
    messages: list[ProviderMessage]
    estimated_tokens: int


class ChatTurn(BaseModel):
    """Outcome of one submission: the user's message and the reply."""

    user_message: ChatMessage
    assistant_message: ChatMessage
    formatted: Optional[FormattedResponse] = None
    states: list[PipelineState] = Field(default_factory=list)


# API models


class HistoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Request body for the assistant chat endpoint."""

    query: str = Field(..., min_length=1, max_length=4000)
    history: list[HistoryMessage] = Field(default_factory=list)
    preset: str = Field(default="HOME_CHAT", description="Model parameter preset")

    class Config:
        json_schema_extra = {
            "example": {
                "query": "What coverages are most common?",
                "history": [],
                "preset": "HOME_CHAT",
            }
        }


class ChatResponse(BaseModel):
    """Response body for the assistant chat endpoint."""

    messages: list[ChatMessage]
    html: Optional[str] = None
    metadata: Optional[MessageMetadata] = None


class ClassifyRequest(BaseModel):
    query: str


class ClassifyResponse(BaseModel):
    query_type: QueryType


class ProxyChatRequest(BaseModel):
    """Callable-proxy request, accepting the browser's camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ProviderMessage] = Field(..., min_length=1)
    model: str = "gpt-4o-mini"
    max_tokens: int = Field(default=1000, alias="maxTokens", gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, alias="topP")
    frequency_penalty: Optional[float] = Field(default=None, alias="frequencyPenalty")
    presence_penalty: Optional[float] = Field(default=None, alias="presencePenalty")

    def to_model_parameters(self) -> ModelParameters:
        return ModelParameters(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            top_p=self.top_p,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
        )


class ProxyChatResponse(BaseModel):
    success: bool
    content: Optional[str] = None
    usage: dict[str, Any] = Field(default_factory=dict)
