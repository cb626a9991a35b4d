"""Value types shared by the RAG components."""

from typing import List

from pydantic import BaseModel, Field


class RAGSource(BaseModel):
    """A knowledge-base snippet cited by an answer."""

    document_id: str = Field(..., description="Parent document id")
    title: str = Field(..., description="Parent document title")
    content: str = Field(..., description="Matching chunk text")
    similarity: float = Field(..., description="1 - cosine distance to the query")


class RAGResult(BaseModel):
    """Answer produced by the query engine."""

    answer: str
    sources: List[RAGSource] = Field(default_factory=list)


class StoredChunk(BaseModel):
    """Chunk record as kept in the vector store."""

    id: str
    document_id: str
    collection_id: str
    content: str
    chunk_index: int
    embedding: List[float] | None = None


class IngestionResult(BaseModel):
    """Outcome of ingesting one document."""

    document_id: str
    chunk_count: int
