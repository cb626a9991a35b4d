"""Application services orchestrating the persistence and RAG layers."""

from persona_rag.services.conversation_service import (
    ConversationLocks,
    ConversationService,
    ConversationSnapshot,
    ProcessedMessage,
)
from persona_rag.services.persona_service import PersonaService

__all__ = [
    "ConversationLocks",
    "ConversationService",
    "ConversationSnapshot",
    "PersonaService",
    "ProcessedMessage",
]
