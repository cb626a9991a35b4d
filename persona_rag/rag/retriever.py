"""Semantic search over knowledge collections."""

from typing import List, Optional

from persona_rag.config import settings
from persona_rag.rag.embeddings import EmbeddingClient
from persona_rag.rag.schemas import RAGSource
from persona_rag.rag.vector_store import ChunkVectorStore
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)

NO_CONTEXT_MESSAGE = "No relevant documents were found in the internal knowledge base."


class SemanticSearch:
    """Embeds a query and ranks matching chunks from the allowed collections."""

    def __init__(self, embedding_client: EmbeddingClient, vector_store: ChunkVectorStore):
        self.embedding_client = embedding_client
        self.vector_store = vector_store

    async def search(
        self,
        query: str,
        collection_ids: List[str],
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[RAGSource]:
        """
        Retrieve the chunks most similar to a query.

        Args:
            query: The question to search for
            collection_ids: Collections the caller may read; empty means no search
            top_k: Max results (defaults to settings.TOP_K_RESULTS)
            threshold: Minimum similarity, exclusive (defaults to settings.SIMILARITY_THRESHOLD)

        Returns:
            Sources sorted by similarity, best first. Several chunks of the same
            document may appear.

        Example:
            >>> sources = await search.search("refund policy", ["col-1"])
            >>> all(s.similarity > 0.3 for s in sources)
            True
        """
        if not collection_ids:
            return []

        if top_k is None:
            top_k = settings.TOP_K_RESULTS
        if threshold is None:
            threshold = settings.SIMILARITY_THRESHOLD

        query_embedding = await self.embedding_client.embed(query)
        sources = self.vector_store.query(collection_ids, query_embedding, threshold, top_k)

        logger.info(
            f"Retrieved {len(sources)} chunks from {len(collection_ids)} "
            f"collections for query: '{query[:50]}...'"
        )
        return sources


def format_retrieved_context(sources: List[RAGSource]) -> str:
    """
    Format retrieved sources into the knowledge-base block of the system prompt.

    Example:
        >>> format_retrieved_context([])
        'No relevant documents were found in the internal knowledge base.'
    """
    if not sources:
        return NO_CONTEXT_MESSAGE

    formatted_parts = [
        f"[Source {i}: {source.title}]\n{source.content}"
        for i, source in enumerate(sources, 1)
    ]

    return "\n\n---\n\n".join(formatted_parts)
