"""Shared fixtures: in-memory stores and scripted providers."""

import re
import uuid
import zlib
from typing import Any, Dict, List, Optional

import chromadb
import pytest
from chromadb.config import Settings as ChromaSettings
from langchain_core.embeddings import Embeddings
from langchain_core.messages import AIMessage
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from persona_rag.agents import RAGQueryEngine
from persona_rag.db.session import init_db, session_factory
from persona_rag.rag.embeddings import EmbeddingClient
from persona_rag.rag.retriever import SemanticSearch
from persona_rag.rag.vector_store import ChunkVectorStore
from persona_rag.services.persona_service import PersonaService

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"

EMBEDDING_DIM = 64


class KeywordEmbeddings(Embeddings):
    """Deterministic bag-of-words embeddings; identical texts embed identically."""

    def __init__(self):
        self.calls: List[str] = []

    def _embed(self, text: str) -> List[float]:
        vector = [0.0] * EMBEDDING_DIM
        for word in re.findall(r"\w+", text.lower()):
            vector[zlib.crc32(word.encode()) % EMBEDDING_DIM] += 1.0
        if not any(vector):
            vector[0] = 1.0
        return vector

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.calls.extend(texts)
        return [self._embed(t) for t in texts]

    def embed_query(self, text: str) -> List[float]:
        self.calls.append(text)
        return self._embed(text)


def final_message(text: str) -> AIMessage:
    return AIMessage(content=text, response_metadata={"finish_reason": "stop"})


def tool_call_message(name: str, args: Dict[str, Any], call_id: str = "call_1") -> AIMessage:
    return AIMessage(
        content="",
        tool_calls=[{"name": name, "args": args, "id": call_id, "type": "tool_call"}],
        response_metadata={"finish_reason": "tool_calls"},
    )


class ScriptedChatClient:
    """Returns the scripted completions in order, repeating the last one."""

    def __init__(self, responses: List[AIMessage]):
        self.responses = responses
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, model, temperature, max_tokens, tools=None):
        self.calls.append(
            {
                "messages": list(messages),
                "model": model,
                "temperature": temperature,
                "max_tokens": max_tokens,
                "tools": tools,
            }
        )
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return self.responses[index]


class RecordingToolExecutor:
    """Tool executor stub answering every call with a fixed text."""

    def __init__(self, result: str = "tool result"):
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, tool_name: str, args: Any, tool_config: Optional[dict] = None) -> str:
        self.calls.append({"name": tool_name, "args": args, "config": tool_config})
        return self.result


@pytest.fixture(scope="session")
def chroma_client():
    return chromadb.EphemeralClient(settings=ChromaSettings(anonymized_telemetry=False))


@pytest.fixture
def vector_store(chroma_client) -> ChunkVectorStore:
    return ChunkVectorStore.from_client(chroma_client, f"test_{uuid.uuid4().hex}")


@pytest.fixture
def embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture
def embedding_client(embeddings) -> EmbeddingClient:
    return EmbeddingClient(embeddings)


@pytest.fixture
def search(embedding_client, vector_store) -> SemanticSearch:
    return SemanticSearch(embedding_client, vector_store)


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(db_engine):
    async with session_factory(db_engine)() as session:
        yield session


@pytest.fixture
def chat_client() -> ScriptedChatClient:
    return ScriptedChatClient([final_message("Olá! Como posso ajudar?")])


@pytest.fixture
def tool_executor() -> RecordingToolExecutor:
    return RecordingToolExecutor()


@pytest.fixture
def query_engine(session, search, chat_client, tool_executor) -> RAGQueryEngine:
    return RAGQueryEngine(session, search, chat_client, tool_executor)


@pytest.fixture
async def persona(session):
    return await PersonaService(session).create_persona(
        ORG_ID,
        name="Tutor",
        system_prompt="You are the course tutor.",
        temperature=0.5,
    )
