"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from persona_rag.db.models import ConversationStatus, MessageRole, ToolType
from persona_rag.rag.schemas import RAGSource


def _strip_required(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("Value cannot be empty")
    return v.strip()


class CollectionCreate(BaseModel):
    """Request model for creating a knowledge collection."""

    name: str = Field(..., min_length=1, max_length=200, examples=["Course FAQ"])
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_required(v)


class CollectionResponse(BaseModel):
    """Knowledge collection with its document count."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    document_count: int = 0


class DocumentIngest(BaseModel):
    """Request model for ingesting a document into a collection."""

    title: str = Field(..., min_length=1, max_length=500)
    content: str = Field(..., min_length=1, description="Full document text")
    source: Optional[str] = Field(None, description="Where the text came from")
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("title", "content")
    @classmethod
    def validate_text(cls, v: str) -> str:
        return _strip_required(v)


class IngestionResponse(BaseModel):
    """Outcome of a document ingestion."""

    document_id: str
    chunk_count: int


class DocumentSummary(BaseModel):
    """Document listing entry."""

    id: str
    title: str
    source: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    chunk_count: int


class PersonaCreate(BaseModel):
    """Request model for creating a persona."""

    name: str = Field(..., min_length=1, max_length=200)
    system_prompt: str = Field(..., min_length=1, description="Drives persona behavior")
    description: Optional[str] = None
    model: Optional[str] = Field(None, examples=["gpt-4o-mini"])
    temperature: Optional[float] = Field(
        None, description="Clamped to [0, 2]", examples=[0.3]
    )
    voice_enabled: bool = True
    voice_uuid: Optional[str] = None


class PersonaUpdate(BaseModel):
    """Partial update of a persona; omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    system_prompt: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = Field(None, description="Clamped to [0, 2]")
    voice_enabled: Optional[bool] = None
    voice_uuid: Optional[str] = None
    is_active: Optional[bool] = None


class PersonaResponse(BaseModel):
    """Persona configuration."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    name: str
    description: Optional[str] = None
    system_prompt: str
    model: str
    temperature: float
    voice_enabled: bool
    voice_uuid: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    collection_ids: List[str] = Field(default_factory=list)


class ToolBindingRequest(BaseModel):
    """Enable a tool for a persona (replaces an existing binding of that type)."""

    tool_type: ToolType
    config: Optional[Dict[str, Any]] = Field(
        None,
        description="Tool-specific config",
        examples=[{"paymentLinks": {"curso_basico": "https://buy.stripe.com/x"}}],
    )
    is_enabled: bool = True


class ToolBindingUpdate(BaseModel):
    """Partial update of a tool binding."""

    config: Optional[Dict[str, Any]] = None
    is_enabled: Optional[bool] = None


class ToolBindingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    persona_id: str
    tool_type: ToolType
    config: Optional[Dict[str, Any]] = None
    is_enabled: bool


class PersonaTestRequest(BaseModel):
    """One-shot question to a persona."""

    question: str = Field(..., min_length=1, max_length=4000)

    @field_validator("question")
    @classmethod
    def validate_question(cls, v: str) -> str:
        return _strip_required(v)


class RAGResponse(BaseModel):
    answer: str
    sources: List[RAGSource] = Field(default_factory=list)


class MessageRequest(BaseModel):
    """Request model for sending a message to a persona."""

    persona_id: str = Field(..., description="Persona answering the conversation")
    message: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="User message",
        examples=["Olá"],
    )
    channel_id: Optional[str] = None
    contact_id: Optional[str] = None
    session_id: Optional[str] = Field(
        None, description="Session ID for conversation continuity"
    )

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        """Validate message is not empty or whitespace only."""
        if not v or not v.strip():
            raise ValueError("Message cannot be empty")
        return v.strip()


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    sources: Optional[List[RAGSource]] = None
    created_at: datetime


class ProcessMessageResponse(BaseModel):
    """Assistant reply to a posted message."""

    conversation_id: str
    message: MessageResponse
    sources: List[RAGSource] = Field(default_factory=list)


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    org_id: str
    persona_id: str
    channel_id: Optional[str] = None
    contact_id: Optional[str] = None
    session_id: Optional[str] = None
    status: ConversationStatus
    created_at: datetime
    updated_at: datetime
    messages: List[MessageResponse] = Field(default_factory=list)


class ConversationListResponse(BaseModel):
    items: List[ConversationResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error type or code")

    message: str = Field(..., description="Human-readable error message")

    details: Optional[Dict[str, Any]] = Field(
        None, description="Additional error details"
    )


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(
        ...,
        description="Overall health status",
        examples=["healthy", "degraded", "unhealthy"],
    )

    api: str = Field(..., description="API service status")

    database: str = Field(..., description="Relational store status")

    vector_store: str = Field(..., description="Vector store status")

    llm: str = Field(default="not_tested", description="LLM connection status")

    vector_chunk_count: Optional[int] = Field(
        None, description="Number of chunks in the vector store"
    )

    error: Optional[str] = Field(None, description="First error met, if any")


class ConfigResponse(BaseModel):
    """Configuration information response."""

    llm_model: str = Field(..., description="Default chat model for new personas")
    embedding_model: str = Field(..., description="Embedding model")
    environment: str = Field(..., description="Environment (development/production)")
    chunk_size: int = Field(..., description="Max characters per chunk")
    top_k_results: int = Field(..., description="Number of RAG results retrieved")
    similarity_threshold: float = Field(..., description="Minimum chunk similarity")
    max_tool_iterations: int = Field(..., description="Cap on tool-calling rounds")
    openai_configured: bool
    stripe_configured: bool
    lex_corpus_configured: bool
