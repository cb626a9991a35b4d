"""Knowledge ingestion pipeline and collection/document management."""

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import delete, select
from sqlmodel.ext.asyncio.session import AsyncSession

from persona_rag.db.models import KnowledgeCollection, KnowledgeDocument, PersonaCollection
from persona_rag.exceptions import NotFoundError
from persona_rag.rag.chunker import chunk_text
from persona_rag.rag.embeddings import EmbeddingClient
from persona_rag.rag.schemas import IngestionResult
from persona_rag.rag.vector_store import ChunkVectorStore
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


class KnowledgeIngestionPipeline:
    """
    Materializes a document into searchable chunks.

    Ingestion is create-only: the same text ingested twice yields two
    documents. To update a document, delete it and ingest it again.
    """

    def __init__(
        self,
        session: AsyncSession,
        embedding_client: EmbeddingClient,
        vector_store: ChunkVectorStore,
        max_chunk_size: Optional[int] = None,
        overlap_words: Optional[int] = None,
    ):
        self.session = session
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.max_chunk_size = max_chunk_size
        self.overlap_words = overlap_words

    async def ingest(
        self,
        collection_id: str,
        title: str,
        content: str,
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestionResult:
        """
        Persist a document, then chunk, embed and store it chunk by chunk.

        The document row is committed before any embedding call. A failed
        embedding aborts the remaining chunks and propagates; chunks already
        written keep their indices and the document stays, so deleting the
        document is the recovery path.

        Raises:
            ConfigurationMissingError: If no embedding credential is configured
            ProviderFailureError: If an embedding call fails
        """
        document = KnowledgeDocument(
            collection_id=collection_id,
            title=title,
            content=content,
            source=source,
            doc_metadata=metadata,
        )
        self.session.add(document)
        await self.session.commit()
        await self.session.refresh(document)

        chunks = chunk_text(content, self.max_chunk_size, self.overlap_words)
        logger.info(f"Document '{title}' ({document.id}): {len(chunks)} chunks")

        for index, chunk in enumerate(chunks):
            try:
                embedding = await self.embedding_client.embed(chunk)
            except Exception:
                logger.error(
                    f"Ingestion of '{title}' aborted at chunk {index}/{len(chunks)}"
                )
                raise

            self.vector_store.add_chunk(
                document_id=document.id,
                collection_id=collection_id,
                title=title,
                content=chunk,
                embedding=embedding,
                chunk_index=index,
            )

        logger.info(f"Ingested document {document.id} with {len(chunks)} chunks")
        return IngestionResult(document_id=document.id, chunk_count=len(chunks))


class KnowledgeService:
    """Organization-scoped management of knowledge collections and documents."""

    def __init__(
        self,
        session: AsyncSession,
        vector_store: ChunkVectorStore,
        pipeline: Optional[KnowledgeIngestionPipeline] = None,
    ):
        self.session = session
        self.vector_store = vector_store
        self.pipeline = pipeline

    async def create_collection(
        self, org_id: str, name: str, description: Optional[str] = None
    ) -> KnowledgeCollection:
        collection = KnowledgeCollection(org_id=org_id, name=name, description=description)
        self.session.add(collection)
        await self.session.commit()
        await self.session.refresh(collection)
        logger.info(f"Created collection '{name}' ({collection.id}) for org {org_id}")
        return collection

    async def get_collection(self, collection_id: str, org_id: str) -> KnowledgeCollection:
        query = select(KnowledgeCollection).where(
            KnowledgeCollection.id == collection_id,
            KnowledgeCollection.org_id == org_id,
        )
        collection = (await self.session.exec(query)).first()
        if not collection:
            raise NotFoundError("Collection", collection_id)
        return collection

    async def list_collections(self, org_id: str) -> List[Dict[str, Any]]:
        """Collections of an organization, newest first, with document counts."""
        query = (
            select(KnowledgeCollection, func.count(KnowledgeDocument.id))
            .join(
                KnowledgeDocument,
                KnowledgeDocument.collection_id == KnowledgeCollection.id,
                isouter=True,
            )
            .where(KnowledgeCollection.org_id == org_id)
            .group_by(KnowledgeCollection.id)
            .order_by(KnowledgeCollection.created_at.desc())
        )
        rows = (await self.session.exec(query)).all()
        return [
            {**collection.model_dump(), "document_count": count}
            for collection, count in rows
        ]

    async def delete_collection(self, collection_id: str, org_id: str) -> None:
        """Delete a collection with its documents, chunks and persona links."""
        await self.get_collection(collection_id, org_id)

        self.vector_store.delete_collection(collection_id)
        await self.session.exec(
            delete(KnowledgeDocument).where(KnowledgeDocument.collection_id == collection_id)
        )
        await self.session.exec(
            delete(PersonaCollection).where(PersonaCollection.collection_id == collection_id)
        )
        await self.session.exec(
            delete(KnowledgeCollection).where(KnowledgeCollection.id == collection_id)
        )
        await self.session.commit()
        logger.info(f"Deleted collection {collection_id}")

    async def list_documents(self, collection_id: str, org_id: str) -> List[Dict[str, Any]]:
        """Documents of a collection, newest first, with chunk counts."""
        await self.get_collection(collection_id, org_id)

        query = (
            select(KnowledgeDocument)
            .where(KnowledgeDocument.collection_id == collection_id)
            .order_by(KnowledgeDocument.created_at.desc())
        )
        documents = (await self.session.exec(query)).all()
        return [
            {
                "id": doc.id,
                "title": doc.title,
                "source": doc.source,
                "metadata": doc.doc_metadata,
                "created_at": doc.created_at,
                "chunk_count": self.vector_store.count({"document_id": doc.id}),
            }
            for doc in documents
        ]

    async def ingest_document(
        self,
        collection_id: str,
        org_id: str,
        title: str,
        content: str,
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> IngestionResult:
        await self.get_collection(collection_id, org_id)
        if self.pipeline is None:
            raise RuntimeError("KnowledgeService was created without an ingestion pipeline")
        return await self.pipeline.ingest(collection_id, title, content, source, metadata)

    async def delete_document(self, document_id: str, org_id: str) -> None:
        query = (
            select(KnowledgeDocument)
            .join(
                KnowledgeCollection,
                KnowledgeCollection.id == KnowledgeDocument.collection_id,
            )
            .where(
                KnowledgeDocument.id == document_id,
                KnowledgeCollection.org_id == org_id,
            )
        )
        document = (await self.session.exec(query)).first()
        if not document:
            raise NotFoundError("Document", document_id)

        self.vector_store.delete_document(document_id)
        await self.session.delete(document)
        await self.session.commit()
        logger.info(f"Deleted document {document_id}")
