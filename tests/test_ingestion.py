"""Tests for document ingestion and knowledge-base management."""

import pytest

from persona_rag.db.models import KnowledgeDocument, PersonaCollection
from persona_rag.exceptions import NotFoundError, ProviderFailureError
from persona_rag.rag.embeddings import EmbeddingClient
from persona_rag.rag.ingestion import KnowledgeIngestionPipeline, KnowledgeService
from persona_rag.services.persona_service import PersonaService
from tests.conftest import ORG_ID, OTHER_ORG_ID, KeywordEmbeddings

TWO_PARAGRAPHS = ("alpha " * 100).strip() + "\n\n" + ("omega " * 100).strip()


@pytest.fixture
def pipeline(session, embedding_client, vector_store):
    return KnowledgeIngestionPipeline(
        session, embedding_client, vector_store, max_chunk_size=500, overlap_words=50
    )


@pytest.fixture
def knowledge(session, vector_store, pipeline):
    return KnowledgeService(session, vector_store, pipeline)


class TestKnowledgeIngestionPipeline:
    """Tests for chunk, embed and store."""

    async def test_two_paragraph_document(self, knowledge, vector_store, embeddings):
        """Test that a 1200-character document yields chunks 0 and 1 with embeddings."""
        collection = await knowledge.create_collection(ORG_ID, "Course FAQ")

        result = await knowledge.ingest_document(
            collection.id, ORG_ID, "Guide", TWO_PARAGRAPHS, source="upload"
        )

        assert result.chunk_count == 2
        chunks = vector_store.get_chunks(result.document_id, include_embeddings=True)
        assert [c.chunk_index for c in chunks] == [0, 1]
        assert all(c.embedding is not None and len(c.embedding) > 0 for c in chunks)
        assert all(c.collection_id == collection.id for c in chunks)
        # one embedding call per chunk
        assert len(embeddings.calls) == 2

    async def test_ingestion_is_create_only(self, knowledge):
        """Test that ingesting the same text twice creates two documents."""
        collection = await knowledge.create_collection(ORG_ID, "FAQ")

        first = await knowledge.ingest_document(collection.id, ORG_ID, "Doc", "Same text.")
        second = await knowledge.ingest_document(collection.id, ORG_ID, "Doc", "Same text.")

        assert first.document_id != second.document_id
        documents = await knowledge.list_documents(collection.id, ORG_ID)
        assert len(documents) == 2

    async def test_embedding_failure_aborts_and_keeps_document(
        self, session, vector_store, knowledge
    ):
        """Test that a failed embedding stops the loop; written chunks and the row stay."""

        class FailingOnSecond(KeywordEmbeddings):
            async def aembed_query(self, text):
                if len(self.calls) >= 1:
                    raise RuntimeError("provider down")
                return self.embed_query(text)

        collection = await knowledge.create_collection(ORG_ID, "FAQ")
        pipeline = KnowledgeIngestionPipeline(
            session, EmbeddingClient(FailingOnSecond()), vector_store, 500, 50
        )

        with pytest.raises(ProviderFailureError):
            await pipeline.ingest(collection.id, "Guide", TWO_PARAGRAPHS)

        documents = await knowledge.list_documents(collection.id, ORG_ID)
        assert len(documents) == 1
        assert documents[0]["chunk_count"] == 1

    async def test_metadata_is_stored(self, knowledge, session):
        """Test that opaque metadata is persisted with the document."""
        collection = await knowledge.create_collection(ORG_ID, "FAQ")

        result = await knowledge.ingest_document(
            collection.id, ORG_ID, "Doc", "Text.", metadata={"lang": "pt", "pages": 3}
        )

        document = await session.get(KnowledgeDocument, result.document_id)
        assert document.doc_metadata == {"lang": "pt", "pages": 3}


class TestKnowledgeService:
    """Tests for organization-scoped collection management."""

    async def test_list_collections_with_counts(self, knowledge):
        """Test that collections of the organization list their document counts."""
        first = await knowledge.create_collection(ORG_ID, "First")
        second = await knowledge.create_collection(ORG_ID, "Second")
        await knowledge.create_collection(OTHER_ORG_ID, "Foreign")
        await knowledge.ingest_document(first.id, ORG_ID, "Doc", "Text.")

        collections = await knowledge.list_collections(ORG_ID)

        assert {c["id"]: c["document_count"] for c in collections} == {
            first.id: 1,
            second.id: 0,
        }

    async def test_other_org_collection_not_found(self, knowledge):
        """Test that collections of another organization are invisible."""
        collection = await knowledge.create_collection(OTHER_ORG_ID, "Foreign")

        with pytest.raises(NotFoundError):
            await knowledge.ingest_document(collection.id, ORG_ID, "Doc", "Text.")
        with pytest.raises(NotFoundError):
            await knowledge.delete_collection(collection.id, ORG_ID)

    async def test_delete_collection_cascades(self, knowledge, session, vector_store, persona):
        """Test that deleting a collection removes documents, chunks and persona links."""
        collection = await knowledge.create_collection(ORG_ID, "FAQ")
        await PersonaService(session).assign_collection(persona.id, collection.id, ORG_ID)
        result = await knowledge.ingest_document(collection.id, ORG_ID, "Guide", TWO_PARAGRAPHS)
        assert vector_store.count({"document_id": result.document_id}) == 2

        await knowledge.delete_collection(collection.id, ORG_ID)

        assert vector_store.count({"document_id": result.document_id}) == 0
        assert await session.get(KnowledgeDocument, result.document_id) is None
        assert (
            await session.get(PersonaCollection, (persona.id, collection.id))
        ) is None
        with pytest.raises(NotFoundError):
            await knowledge.get_collection(collection.id, ORG_ID)

    async def test_delete_document(self, knowledge, vector_store):
        """Test that deleting a document removes its chunks."""
        collection = await knowledge.create_collection(ORG_ID, "FAQ")
        result = await knowledge.ingest_document(collection.id, ORG_ID, "Doc", "Text.")

        await knowledge.delete_document(result.document_id, ORG_ID)

        assert vector_store.count({"document_id": result.document_id}) == 0
        assert await knowledge.list_documents(collection.id, ORG_ID) == []

    async def test_delete_document_other_org(self, knowledge):
        """Test that a document cannot be deleted from another organization."""
        collection = await knowledge.create_collection(ORG_ID, "FAQ")
        result = await knowledge.ingest_document(collection.id, ORG_ID, "Doc", "Text.")

        with pytest.raises(NotFoundError):
            await knowledge.delete_document(result.document_id, OTHER_ORG_ID)
