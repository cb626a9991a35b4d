"""Relational persistence layer."""

from persona_rag.db.models import (
    Conversation,
    ConversationStatus,
    KnowledgeCollection,
    KnowledgeDocument,
    Message,
    MessageRole,
    Persona,
    PersonaCollection,
    PersonaTool,
    ToolType,
)
from persona_rag.db.session import get_engine, get_session, init_db, session_factory

__all__ = [
    # models
    "Persona",
    "PersonaCollection",
    "PersonaTool",
    "ToolType",
    "KnowledgeCollection",
    "KnowledgeDocument",
    "Conversation",
    "ConversationStatus",
    "Message",
    "MessageRole",
    # session
    "get_engine",
    "get_session",
    "init_db",
    "session_factory",
]
