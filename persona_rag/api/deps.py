"""FastAPI dependencies: organization scoping, providers and services."""

from dataclasses import dataclass

from fastapi import Depends, Header, Request
from sqlmodel.ext.asyncio.session import AsyncSession

from persona_rag.agents.query_engine import RAGQueryEngine
from persona_rag.db.session import get_session
from persona_rag.exceptions import ConfigurationMissingError, ValidationError
from persona_rag.llm.openai_client import ChatCompletionClient
from persona_rag.rag.embeddings import EmbeddingClient
from persona_rag.rag.ingestion import KnowledgeIngestionPipeline, KnowledgeService
from persona_rag.rag.retriever import SemanticSearch
from persona_rag.rag.vector_store import ChunkVectorStore, get_vector_store
from persona_rag.services.conversation_service import ConversationService
from persona_rag.services.persona_service import PersonaService
from persona_rag.tools.executor import ToolExecutor


@dataclass
class Providers:
    """External clients shared by the requests of one application."""

    vector_store: ChunkVectorStore
    embedding_client: EmbeddingClient
    chat_client: ChatCompletionClient
    tool_executor: ToolExecutor


def build_providers() -> Providers:
    """Create the production clients (the vector store is opened on disk)."""
    return Providers(
        vector_store=get_vector_store(),
        embedding_client=EmbeddingClient(),
        chat_client=ChatCompletionClient(),
        tool_executor=ToolExecutor(),
    )


def get_providers(request: Request) -> Providers:
    providers = getattr(request.app.state, "providers", None)
    if providers is None:
        raise ConfigurationMissingError("vector store")
    return providers


def get_org_id(x_org_id: str = Header(..., alias="X-Org-Id")) -> str:
    """Organization of the caller, set by the authenticating gateway."""
    if not x_org_id.strip():
        raise ValidationError("must not be blank", field="X-Org-Id")
    return x_org_id.strip()


def get_knowledge_service(
    session: AsyncSession = Depends(get_session),
    providers: Providers = Depends(get_providers),
) -> KnowledgeService:
    pipeline = KnowledgeIngestionPipeline(
        session, providers.embedding_client, providers.vector_store
    )
    return KnowledgeService(session, providers.vector_store, pipeline)


def get_persona_service(session: AsyncSession = Depends(get_session)) -> PersonaService:
    return PersonaService(session)


def get_query_engine(
    session: AsyncSession = Depends(get_session),
    providers: Providers = Depends(get_providers),
) -> RAGQueryEngine:
    return RAGQueryEngine(
        session,
        SemanticSearch(providers.embedding_client, providers.vector_store),
        providers.chat_client,
        providers.tool_executor,
    )


def get_conversation_service(
    session: AsyncSession = Depends(get_session),
    engine: RAGQueryEngine = Depends(get_query_engine),
) -> ConversationService:
    return ConversationService(session, engine)
