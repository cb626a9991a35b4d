"""Conversation lifecycle: find-or-create, message persistence and RAG turns."""

import asyncio
import math
import weakref
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from persona_rag.agents.query_engine import RAGQueryEngine
from persona_rag.config import settings
from persona_rag.db.models import (
    Conversation,
    ConversationStatus,
    Message,
    MessageRole,
    Persona,
    utcnow,
)
from persona_rag.exceptions import NotFoundError
from persona_rag.rag.schemas import RAGResult, RAGSource
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ConversationSnapshot:
    """A conversation with messages in chronological order."""

    conversation: Conversation
    messages: List[Message] = field(default_factory=list)


@dataclass
class ProcessedMessage:
    """Persisted assistant reply and the sources it cites."""

    message: Message
    sources: List[RAGSource] = field(default_factory=list)


class ConversationLocks:
    """
    One ``asyncio.Lock`` per conversation id.

    Locks are held weakly and disappear once no task holds or awaits them.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def get(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock


# shared by every service instance in the process
conversation_locks = ConversationLocks()


class ConversationService:
    """Organization-scoped conversations answered by a persona."""

    def __init__(
        self,
        session: AsyncSession,
        engine: Optional[RAGQueryEngine] = None,
        locks: Optional[ConversationLocks] = None,
    ):
        self.session = session
        self.engine = engine
        self.locks = locks or conversation_locks

    def _require_engine(self) -> RAGQueryEngine:
        if self.engine is None:
            raise RuntimeError("ConversationService was created without a query engine")
        return self.engine

    async def _recent_messages(self, conversation_id: str, limit: int) -> List[Message]:
        query = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        messages = list((await self.session.exec(query)).all())
        messages.reverse()
        return messages

    async def _get(self, conversation_id: str, org_id: str) -> Conversation:
        query = select(Conversation).where(
            Conversation.id == conversation_id, Conversation.org_id == org_id
        )
        conversation = (await self.session.exec(query)).first()
        if not conversation:
            raise NotFoundError("Conversation", conversation_id)
        return conversation

    async def get_or_create(
        self,
        org_id: str,
        persona_id: str,
        channel_id: Optional[str] = None,
        contact_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ConversationSnapshot:
        """
        Find the ACTIVE conversation matching every supplied scoping field,
        or create one.

        Returns:
            The conversation with up to ``CONVERSATION_WINDOW`` recent messages

        Raises:
            NotFoundError: If a new conversation is needed and the persona is
                not in the organization
        """
        query = select(Conversation).where(
            Conversation.org_id == org_id,
            Conversation.persona_id == persona_id,
            Conversation.status == ConversationStatus.ACTIVE,
        )
        if channel_id:
            query = query.where(Conversation.channel_id == channel_id)
        if contact_id:
            query = query.where(Conversation.contact_id == contact_id)
        if session_id:
            query = query.where(Conversation.session_id == session_id)

        conversation = (
            await self.session.exec(query.order_by(Conversation.updated_at.desc()))
        ).first()

        if conversation:
            recent = await self._recent_messages(conversation.id, settings.CONVERSATION_WINDOW)
            return ConversationSnapshot(conversation=conversation, messages=recent)

        persona = (
            await self.session.exec(
                select(Persona).where(Persona.id == persona_id, Persona.org_id == org_id)
            )
        ).first()
        if not persona:
            raise NotFoundError("Persona", persona_id)

        conversation = Conversation(
            org_id=org_id,
            persona_id=persona_id,
            channel_id=channel_id,
            contact_id=contact_id,
            session_id=session_id,
        )
        self.session.add(conversation)
        await self.session.commit()
        await self.session.refresh(conversation)
        logger.info(f"Created conversation {conversation.id} with persona {persona_id}")
        return ConversationSnapshot(conversation=conversation, messages=[])

    async def process_message(
        self, conversation_id: str, org_id: str, user_message: str
    ) -> ProcessedMessage:
        """
        Answer a user message within a conversation.

        The history passed to the engine is the window of messages that
        existed before this turn, so the question is not repeated in it.
        Turns of the same conversation run one at a time.

        Raises:
            NotFoundError: If the conversation is missing or outside the organization
            ProviderFailureError: If an embedding or completion call fails
        """
        engine = self._require_engine()

        async with self.locks.get(conversation_id):
            conversation = await self._get(conversation_id, org_id)
            recent = await self._recent_messages(conversation_id, settings.CONVERSATION_WINDOW)

            self.session.add(
                Message(
                    conversation_id=conversation_id,
                    role=MessageRole.USER,
                    content=user_message,
                )
            )
            await self.session.commit()

            history = [
                {"role": message.role.value.lower(), "content": message.content}
                for message in recent
            ]
            result = await engine.query(
                user_message, conversation.persona_id, org_id, history
            )

            assistant_message = Message(
                conversation_id=conversation_id,
                role=MessageRole.ASSISTANT,
                content=result.answer,
                sources=[source.model_dump() for source in result.sources],
            )
            conversation.updated_at = utcnow()
            self.session.add(assistant_message)
            self.session.add(conversation)
            await self.session.commit()
            await self.session.refresh(assistant_message)

        logger.info(
            f"Conversation {conversation_id}: answered with "
            f"{len(result.sources)} sources"
        )
        return ProcessedMessage(message=assistant_message, sources=result.sources)

    async def get_conversation(self, conversation_id: str, org_id: str) -> ConversationSnapshot:
        """Conversation with all its messages, oldest first."""
        conversation = await self._get(conversation_id, org_id)
        query = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at)
        )
        messages = list((await self.session.exec(query)).all())
        return ConversationSnapshot(conversation=conversation, messages=messages)

    async def list_conversations(
        self,
        org_id: str,
        persona_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        status: Optional[ConversationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Page of conversations, most recently active first."""
        page = max(page, 1)
        limit = max(limit, 1)

        filters = [Conversation.org_id == org_id]
        if persona_id:
            filters.append(Conversation.persona_id == persona_id)
        if channel_id:
            filters.append(Conversation.channel_id == channel_id)
        if status:
            filters.append(Conversation.status == status)

        total = (
            await self.session.exec(
                select(func.count()).select_from(Conversation).where(*filters)
            )
        ).one()
        items = (
            await self.session.exec(
                select(Conversation)
                .where(*filters)
                .order_by(Conversation.updated_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).all()

        return {
            "items": list(items),
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    async def close_conversation(self, conversation_id: str, org_id: str) -> Conversation:
        conversation = await self._get(conversation_id, org_id)
        conversation.status = ConversationStatus.CLOSED
        conversation.updated_at = utcnow()
        self.session.add(conversation)
        await self.session.commit()
        await self.session.refresh(conversation)
        logger.info(f"Closed conversation {conversation_id}")
        return conversation

    async def test_persona(self, persona_id: str, org_id: str, question: str) -> RAGResult:
        """One-shot query against a persona; nothing is persisted."""
        return await self._require_engine().query(question, persona_id, org_id)
