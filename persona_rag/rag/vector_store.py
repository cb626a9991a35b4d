"""Chunk vector store implementation using ChromaDB."""

import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import chromadb
from chromadb.api import ClientAPI
from chromadb.api.models.Collection import Collection

from persona_rag.config import settings
from persona_rag.rag.schemas import RAGSource, StoredChunk
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


def get_chroma_client(persist_directory: Optional[Path] = None) -> ClientAPI:
    """
    Get a persistent ChromaDB client.

    Args:
        persist_directory: Directory for persistence (defaults to settings.CHROMA_PERSIST_DIR)
    """
    if persist_directory is None:
        persist_directory = settings.CHROMA_PERSIST_DIR

    persist_directory.mkdir(parents=True, exist_ok=True)
    return chromadb.PersistentClient(path=str(persist_directory))


class ChunkVectorStore:
    """
    Stores chunk embeddings keyed by document and collection.

    Each record holds the chunk text as the Chroma document and
    ``document_id``, ``collection_id``, ``title`` and ``chunk_index`` as
    metadata. The collection uses cosine distance, so similarity is
    ``1 - distance``.
    """

    def __init__(self, collection: Collection):
        self._collection = collection

    @classmethod
    def from_client(
        cls, client: ClientAPI, collection_name: Optional[str] = None
    ) -> "ChunkVectorStore":
        collection = client.get_or_create_collection(
            name=collection_name or settings.CHROMA_COLLECTION,
            metadata={"hnsw:space": "cosine"},
        )
        logger.info(
            f"Loaded vector store '{collection.name}' with {collection.count()} chunks"
        )
        return cls(collection)

    def add_chunk(
        self,
        document_id: str,
        collection_id: str,
        title: str,
        content: str,
        embedding: List[float],
        chunk_index: int,
    ) -> str:
        """Insert one chunk and return its id."""
        chunk_id = str(uuid.uuid4())
        self._collection.add(
            ids=[chunk_id],
            embeddings=[embedding],
            documents=[content],
            metadatas=[
                {
                    "document_id": document_id,
                    "collection_id": collection_id,
                    "title": title,
                    "chunk_index": chunk_index,
                }
            ],
        )
        return chunk_id

    def query(
        self,
        collection_ids: List[str],
        query_embedding: List[float],
        threshold: float,
        limit: int,
    ) -> List[RAGSource]:
        """
        Nearest chunks from the given collections, best first.

        Only chunks with similarity strictly above ``threshold`` are kept;
        at most ``limit`` are returned.
        """
        if not collection_ids:
            return []

        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=limit,
            where={"collection_id": {"$in": list(collection_ids)}},
            include=["documents", "metadatas", "distances"],
        )

        sources: List[RAGSource] = []
        if results and results["ids"] and results["ids"][0]:
            for i, _ in enumerate(results["ids"][0]):
                metadata = results["metadatas"][0][i]
                similarity = 1.0 - float(results["distances"][0][i])
                if similarity <= threshold:
                    continue
                sources.append(
                    RAGSource(
                        document_id=str(metadata["document_id"]),
                        title=str(metadata.get("title", "")),
                        content=results["documents"][0][i],
                        similarity=similarity,
                    )
                )

        sources.sort(key=lambda s: s.similarity, reverse=True)
        return sources[:limit]

    def get_chunks(
        self, document_id: str, include_embeddings: bool = False
    ) -> List[StoredChunk]:
        """All chunks of a document in chunk-index order."""
        include: List[Any] = ["documents", "metadatas"]
        if include_embeddings:
            include.append("embeddings")

        results = self._collection.get(where={"document_id": document_id}, include=include)

        chunks = []
        for i, chunk_id in enumerate(results["ids"]):
            metadata = results["metadatas"][i]
            embedding = None
            if include_embeddings and results.get("embeddings") is not None:
                embedding = [float(x) for x in results["embeddings"][i]]
            chunks.append(
                StoredChunk(
                    id=chunk_id,
                    document_id=str(metadata["document_id"]),
                    collection_id=str(metadata["collection_id"]),
                    content=results["documents"][i],
                    chunk_index=int(metadata["chunk_index"]),
                    embedding=embedding,
                )
            )

        return sorted(chunks, key=lambda c: c.chunk_index)

    def count(self, where: Optional[Dict[str, Any]] = None) -> int:
        """Number of chunks, optionally restricted by a metadata filter."""
        if where is None:
            return self._collection.count()
        return len(self._collection.get(where=where, include=["metadatas"])["ids"])

    def delete_document(self, document_id: str) -> None:
        self._collection.delete(where={"document_id": document_id})
        logger.info(f"Deleted chunks of document {document_id}")

    def delete_collection(self, collection_id: str) -> None:
        self._collection.delete(where={"collection_id": collection_id})
        logger.info(f"Deleted chunks of collection {collection_id}")


def get_vector_store(client: Optional[ClientAPI] = None) -> ChunkVectorStore:
    """
    Get the chunk vector store (loads the persisted collection or creates it).

    Example:
        >>> store = get_vector_store()
        >>> store.count()
        0
    """
    return ChunkVectorStore.from_client(client or get_chroma_client())
