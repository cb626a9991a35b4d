"""RAG system components."""

from persona_rag.rag.chunker import ParagraphChunker, chunk_text
from persona_rag.rag.embeddings import EmbeddingClient, normalize_for_embedding
from persona_rag.rag.ingestion import KnowledgeIngestionPipeline, KnowledgeService
from persona_rag.rag.retriever import (
    NO_CONTEXT_MESSAGE,
    SemanticSearch,
    format_retrieved_context,
)
from persona_rag.rag.schemas import IngestionResult, RAGResult, RAGSource, StoredChunk
from persona_rag.rag.vector_store import (
    ChunkVectorStore,
    get_chroma_client,
    get_vector_store,
)

__all__ = [
    # chunking
    "chunk_text",
    "ParagraphChunker",
    # embeddings
    "EmbeddingClient",
    "normalize_for_embedding",
    # vector store
    "ChunkVectorStore",
    "get_chroma_client",
    "get_vector_store",
    # ingestion
    "KnowledgeIngestionPipeline",
    "KnowledgeService",
    # retrieval
    "SemanticSearch",
    "format_retrieved_context",
    "NO_CONTEXT_MESSAGE",
    # schemas
    "RAGSource",
    "RAGResult",
    "StoredChunk",
    "IngestionResult",
]
