"""Tests for the HTTP API with in-memory stores and scripted providers."""

import httpx
import pytest

from persona_rag.api.deps import Providers
from persona_rag.api.main import app
from persona_rag.db.session import get_session, session_factory
from tests.conftest import ORG_ID, OTHER_ORG_ID

HEADERS = {"X-Org-Id": ORG_ID}


@pytest.fixture
async def client(db_engine, vector_store, embedding_client, chat_client, tool_executor):
    async def override_session():
        async with session_factory(db_engine)() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.state.providers = Providers(
        vector_store=vector_store,
        embedding_client=embedding_client,
        chat_client=chat_client,
        tool_executor=tool_executor,
    )

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    del app.state.providers


async def _create_persona(client, headers=HEADERS):
    response = await client.post(
        "/personas",
        json={"name": "Tutor", "system_prompt": "You are the course tutor.", "temperature": 9},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


class TestHealthAndConfig:
    """Tests for service endpoints."""

    async def test_health(self, client):
        """Test that an empty vector store and a live database are reported."""
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["database"] == "healthy"
        assert body["vector_store"] == "empty"
        assert body["status"] == "healthy"

    async def test_config(self, client):
        """Test that public configuration is exposed."""
        response = await client.get("/config")

        assert response.status_code == 200
        assert response.json()["max_tool_iterations"] == 5


class TestKnowledgeEndpoints:
    """Tests for collection and document endpoints."""

    async def test_ingest_and_list(self, client):
        """Test creating a collection, ingesting a document and listing it."""
        created = await client.post(
            "/knowledge/collections", json={"name": "FAQ"}, headers=HEADERS
        )
        collection_id = created.json()["id"]

        ingested = await client.post(
            f"/knowledge/collections/{collection_id}/documents",
            json={"title": "Refunds", "content": "Refunds within 14 days."},
            headers=HEADERS,
        )
        documents = await client.get(
            f"/knowledge/collections/{collection_id}/documents", headers=HEADERS
        )
        collections = await client.get("/knowledge/collections", headers=HEADERS)

        assert ingested.status_code == 201
        assert ingested.json()["chunk_count"] == 1
        assert [d["title"] for d in documents.json()] == ["Refunds"]
        assert collections.json()[0]["document_count"] == 1

    async def test_other_org_gets_not_found(self, client):
        """Test that another organization sees a 404 error body."""
        created = await client.post(
            "/knowledge/collections", json={"name": "FAQ"}, headers=HEADERS
        )

        response = await client.delete(
            f"/knowledge/collections/{created.json()['id']}",
            headers={"X-Org-Id": OTHER_ORG_ID},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_missing_org_header(self, client):
        """Test that requests without an organization are rejected."""
        response = await client.get("/knowledge/collections")

        assert response.status_code == 422


class TestPersonaEndpoints:
    """Tests for persona endpoints."""

    async def test_create_and_get_persona(self, client):
        """Test that the persona is created with a clamped temperature and linked collections."""
        persona = await _create_persona(client)
        collection = await client.post(
            "/knowledge/collections", json={"name": "FAQ"}, headers=HEADERS
        )
        collection_id = collection.json()["id"]

        linked = await client.post(
            f"/personas/{persona['id']}/collections/{collection_id}", headers=HEADERS
        )
        fetched = await client.get(f"/personas/{persona['id']}", headers=HEADERS)

        assert persona["temperature"] == 2.0
        assert linked.status_code == 204
        assert fetched.json()["collection_ids"] == [collection_id]

    async def test_list_update_delete_persona(self, client):
        """Test listing, partially updating and deleting a persona."""
        persona = await _create_persona(client)
        path = f"/personas/{persona['id']}"

        listed = await client.get("/personas", headers=HEADERS)
        updated = await client.put(
            path, json={"description": "Course tutor", "temperature": 0.9}, headers=HEADERS
        )
        deleted = await client.delete(path, headers=HEADERS)
        missing = await client.get(path, headers=HEADERS)

        assert [p["id"] for p in listed.json()] == [persona["id"]]
        assert updated.status_code == 200
        assert updated.json()["description"] == "Course tutor"
        assert updated.json()["temperature"] == 0.9
        assert updated.json()["name"] == "Tutor"
        assert deleted.status_code == 204
        assert missing.status_code == 404

    async def test_update_persona_blank_prompt(self, client):
        """Test that a whitespace system prompt is a validation error."""
        persona = await _create_persona(client)

        response = await client.put(
            f"/personas/{persona['id']}", json={"system_prompt": "  "}, headers=HEADERS
        )

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    async def test_other_org_cannot_list_or_delete(self, client):
        """Test that personas are hidden from other organizations."""
        persona = await _create_persona(client)
        other = {"X-Org-Id": OTHER_ORG_ID}

        listed = await client.get("/personas", headers=other)
        deleted = await client.delete(f"/personas/{persona['id']}", headers=other)

        assert listed.json() == []
        assert deleted.status_code == 404

    async def test_tool_binding_lifecycle(self, client):
        """Test upserting, disabling and removing a tool binding."""
        persona = await _create_persona(client)
        path = f"/personas/{persona['id']}/tools"

        first = await client.put(
            path, json={"tool_type": "LEGISLACAO_SEARCH"}, headers=HEADERS
        )
        second = await client.put(
            path, json={"tool_type": "LEGISLACAO_SEARCH", "config": {"k": 1}}, headers=HEADERS
        )
        tool_id = second.json()["id"]
        patched = await client.patch(
            f"{path}/{tool_id}", json={"is_enabled": False}, headers=HEADERS
        )
        deleted = await client.delete(f"{path}/{tool_id}", headers=HEADERS)
        remaining = await client.get(path, headers=HEADERS)

        assert first.json()["id"] == tool_id
        assert second.json()["config"] == {"k": 1}
        assert patched.json()["is_enabled"] is False
        assert deleted.status_code == 204
        assert remaining.json() == []

    async def test_unknown_tool_type_rejected(self, client):
        """Test that tool types outside the enumeration are invalid."""
        persona = await _create_persona(client)

        response = await client.put(
            f"/personas/{persona['id']}/tools", json={"tool_type": "SEND_FAX"}, headers=HEADERS
        )

        assert response.status_code == 422

    async def test_persona_test_endpoint(self, client):
        """Test a one-shot question to a persona."""
        persona = await _create_persona(client)

        response = await client.post(
            f"/personas/{persona['id']}/test", json={"question": "Olá"}, headers=HEADERS
        )

        assert response.status_code == 200
        assert response.json() == {"answer": "Olá! Como posso ajudar?", "sources": []}


class TestConversationEndpoints:
    """Tests for conversation endpoints."""

    async def test_message_flow(self, client):
        """Test posting two messages to the same session and reading the conversation."""
        persona = await _create_persona(client)
        body = {"persona_id": persona["id"], "message": "Olá", "session_id": "web-1"}

        first = await client.post("/conversations/messages", json=body, headers=HEADERS)
        second = await client.post("/conversations/messages", json=body, headers=HEADERS)
        conversation_id = first.json()["conversation_id"]
        conversation = await client.get(f"/conversations/{conversation_id}", headers=HEADERS)

        assert first.status_code == 200
        assert first.json()["message"]["role"] == "ASSISTANT"
        assert second.json()["conversation_id"] == conversation_id
        assert [m["role"] for m in conversation.json()["messages"]] == [
            "USER",
            "ASSISTANT",
            "USER",
            "ASSISTANT",
        ]

    async def test_close_and_list(self, client):
        """Test closing a conversation and filtering by status."""
        persona = await _create_persona(client)
        posted = await client.post(
            "/conversations/messages",
            json={"persona_id": persona["id"], "message": "Olá", "contact_id": "c1"},
            headers=HEADERS,
        )
        conversation_id = posted.json()["conversation_id"]

        closed = await client.post(f"/conversations/{conversation_id}/close", headers=HEADERS)
        listed = await client.get("/conversations", params={"status": "CLOSED"}, headers=HEADERS)

        assert closed.json()["status"] == "CLOSED"
        assert listed.json()["total"] == 1
        assert listed.json()["items"][0]["id"] == conversation_id

    async def test_unknown_persona(self, client):
        """Test that messaging a missing persona is a 404."""
        response = await client.post(
            "/conversations/messages",
            json={"persona_id": "missing", "message": "Olá"},
            headers=HEADERS,
        )

        assert response.status_code == 404
        assert "Persona" in response.json()["message"]
