"""
Relational models for personas, knowledge collections and conversations.
Chunk vectors live in the vector store, keyed by document and collection id.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    String,
    TypeDecorator,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel

from persona_rag.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp column.

    Values are normalized to UTC before binding. Backends that drop the
    offset (SQLite) hand back naive values, which are read as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def clamp_temperature(value: Optional[float]) -> float:
    """
    Clamp a persona temperature into the model's accepted range.

    Example:
        >>> clamp_temperature(3.5)
        2.0
    """
    if value is None:
        return settings.DEFAULT_TEMPERATURE
    return min(max(float(value), 0.0), 2.0)


def new_id() -> str:
    return str(uuid.uuid4())


class ToolType(str, Enum):
    STRIPE_CHECK_PAYMENT = "STRIPE_CHECK_PAYMENT"
    STRIPE_SEND_PAYMENT_LINK = "STRIPE_SEND_PAYMENT_LINK"
    TRIBUNAIS_SEARCH = "TRIBUNAIS_SEARCH"
    LEGISLACAO_SEARCH = "LEGISLACAO_SEARCH"


class ConversationStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


class MessageRole(str, Enum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"
    SYSTEM = "SYSTEM"


class Persona(SQLModel, table=True):
    """
    Configured assistant identity: system prompt plus model parameters.
    Knowledge collections and tools are attached through link tables.
    """

    id: str = Field(default_factory=new_id, primary_key=True)
    org_id: str = Field(index=True)

    name: str
    description: Optional[str] = None
    system_prompt: str
    model: str
    temperature: float = Field(default=0.3)

    # speech settings, consumed by the voice channel
    voice_enabled: bool = Field(default=True)
    voice_uuid: Optional[str] = None

    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class KnowledgeCollection(SQLModel, table=True):
    """Organization-scoped set of documents used for retrieval."""

    id: str = Field(default_factory=new_id, primary_key=True)
    org_id: str = Field(index=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class KnowledgeDocument(SQLModel, table=True):
    """Original document text; its chunks are stored in the vector store."""

    id: str = Field(default_factory=new_id, primary_key=True)
    collection_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("knowledgecollection.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    title: str
    content: str
    source: Optional[str] = None
    # "metadata" is reserved on declarative models
    doc_metadata: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column("metadata", JSON)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class PersonaCollection(SQLModel, table=True):
    """Many-to-many link between personas and knowledge collections."""

    persona_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("persona.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    collection_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("knowledgecollection.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )


class PersonaTool(SQLModel, table=True):
    """Tool binding; at most one row per (persona, tool type)."""

    __table_args__ = (UniqueConstraint("persona_id", "tool_type"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    persona_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("persona.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    tool_type: ToolType
    config: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    is_enabled: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Conversation(SQLModel, table=True):
    """Conversation between a contact/session and a persona."""

    id: str = Field(default_factory=new_id, primary_key=True)
    org_id: str = Field(index=True)
    persona_id: str = Field(foreign_key="persona.id", index=True)
    channel_id: Optional[str] = Field(default=None, index=True)
    contact_id: Optional[str] = Field(default=None, index=True)
    session_id: Optional[str] = Field(default=None, index=True)
    status: ConversationStatus = Field(default=ConversationStatus.ACTIVE)

    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Message(SQLModel, table=True):
    """Append-only conversation message."""

    id: str = Field(default_factory=new_id, primary_key=True)
    conversation_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("conversation.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
        )
    )
    role: MessageRole
    content: str
    # cited knowledge-base snippets, only on RAG answers
    sources: Optional[List[Dict[str, Any]]] = Field(
        default=None, sa_column=Column(JSON)
    )
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
