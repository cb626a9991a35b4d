"""API module."""

from persona_rag.api.schemas import (
    CollectionResponse,
    ConfigResponse,
    ConversationResponse,
    ErrorResponse,
    HealthResponse,
    MessageRequest,
    PersonaResponse,
    ProcessMessageResponse,
)

__all__ = [
    "CollectionResponse",
    "ConfigResponse",
    "ConversationResponse",
    "ErrorResponse",
    "HealthResponse",
    "MessageRequest",
    "PersonaResponse",
    "ProcessMessageResponse",
]
