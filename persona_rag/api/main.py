"""FastAPI application for the persona RAG backend."""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import literal, select
from sqlmodel.ext.asyncio.session import AsyncSession

from persona_rag.api.deps import (
    build_providers,
    get_conversation_service,
    get_knowledge_service,
    get_org_id,
    get_persona_service,
)
from persona_rag.api.schemas import (
    CollectionCreate,
    CollectionResponse,
    ConfigResponse,
    ConversationListResponse,
    ConversationResponse,
    DocumentIngest,
    DocumentSummary,
    ErrorResponse,
    HealthResponse,
    IngestionResponse,
    MessageRequest,
    MessageResponse,
    PersonaCreate,
    PersonaResponse,
    PersonaTestRequest,
    PersonaUpdate,
    ProcessMessageResponse,
    RAGResponse,
    ToolBindingRequest,
    ToolBindingResponse,
    ToolBindingUpdate,
)
from persona_rag.config import settings
from persona_rag.db.models import ConversationStatus
from persona_rag.db.session import get_session, init_db
from persona_rag.exceptions import PersonaRagError
from persona_rag.rag.ingestion import KnowledgeService
from persona_rag.services.conversation_service import (
    ConversationService,
    ConversationSnapshot,
)
from persona_rag.services.persona_service import PersonaService
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)

ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Resource not found in this organization"},
    422: {"model": ErrorResponse, "description": "Invalid request"},
    502: {"model": ErrorResponse, "description": "Model provider failure"},
    503: {"model": ErrorResponse, "description": "Missing configuration"},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Startup: Create tables and open the provider clients
    Shutdown: Cleanup resources
    """
    logger.info("Starting persona RAG API")

    try:
        await init_db()
    except Exception as e:
        logger.warning(f"Database initialization failed: {e}")

    try:
        app.state.providers = build_providers()
    except Exception as e:
        logger.warning(f"Vector store initialization failed: {e}")

    yield

    logger.info("Shutting down persona RAG API")


app = FastAPI(
    title="Persona RAG",
    description="Multi-tenant personas with retrieval-augmented generation and tools",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PersonaRagError)
async def persona_rag_error_handler(request: Request, exc: PersonaRagError) -> JSONResponse:
    """Map domain errors to JSON error bodies."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.error, message=exc.message).model_dump(
            exclude_none=True
        ),
    )


def _conversation_response(snapshot: ConversationSnapshot) -> ConversationResponse:
    response = ConversationResponse.model_validate(snapshot.conversation)
    response.messages = [MessageResponse.model_validate(m) for m in snapshot.messages]
    return response


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Persona RAG",
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "health": "/health",
            "knowledge": "/knowledge/collections",
            "personas": "/personas",
            "conversations": "/conversations",
            "docs": "/docs",
        },
    }


@app.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    check_llm: bool = False,
    session: AsyncSession = Depends(get_session),
) -> HealthResponse:
    """
    Health check endpoint.

    Checks:
    - Database is reachable
    - Vector store is open
    - LLM connection (only with ``check_llm=true``)
    """
    health_status = {
        "status": "healthy",
        "api": "running",
        "database": "unknown",
        "vector_store": "unknown",
        "llm": "not_tested",
    }

    try:
        await session.exec(select(literal(1)))
        health_status["database"] = "healthy"
    except Exception as e:
        health_status["database"] = "unhealthy"
        health_status["error"] = str(e)

    providers = getattr(request.app.state, "providers", None)
    if providers is None:
        health_status["vector_store"] = "unhealthy"
    else:
        try:
            count = providers.vector_store.count()
            health_status["vector_store"] = "healthy" if count > 0 else "empty"
            health_status["vector_chunk_count"] = count
        except Exception as e:
            health_status["vector_store"] = "unhealthy"
            health_status.setdefault("error", str(e))

    if check_llm:
        from persona_rag.llm import test_llm_connection

        ok = await run_in_threadpool(test_llm_connection)
        health_status["llm"] = "healthy" if ok else "unhealthy"
    elif not settings.openai_enabled:
        health_status["llm"] = "not_configured"

    if "unhealthy" in (health_status["database"], health_status["vector_store"]):
        health_status["status"] = "degraded"

    return HealthResponse(**health_status)


@app.get("/config", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """
    Get public configuration information.

    Returns non-sensitive configuration details.
    """
    return ConfigResponse(
        llm_model=settings.LLM_MODEL,
        embedding_model=settings.EMBEDDING_MODEL,
        environment=settings.ENVIRONMENT,
        chunk_size=settings.CHUNK_SIZE,
        top_k_results=settings.TOP_K_RESULTS,
        similarity_threshold=settings.SIMILARITY_THRESHOLD,
        max_tool_iterations=settings.MAX_TOOL_ITERATIONS,
        openai_configured=settings.openai_enabled,
        stripe_configured=bool(settings.STRIPE_SECRET_KEY),
        lex_corpus_configured=bool(settings.LEX_CORPUS_URL),
    )


# knowledge base


@app.post(
    "/knowledge/collections",
    response_model=CollectionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_collection(
    body: CollectionCreate,
    org_id: str = Depends(get_org_id),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> CollectionResponse:
    collection = await service.create_collection(org_id, body.name, body.description)
    return CollectionResponse.model_validate(collection)


@app.get("/knowledge/collections", response_model=List[CollectionResponse])
async def list_collections(
    org_id: str = Depends(get_org_id),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> List[CollectionResponse]:
    return [CollectionResponse(**row) for row in await service.list_collections(org_id)]


@app.delete(
    "/knowledge/collections/{collection_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
async def delete_collection(
    collection_id: str,
    org_id: str = Depends(get_org_id),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> None:
    await service.delete_collection(collection_id, org_id)


@app.get(
    "/knowledge/collections/{collection_id}/documents",
    response_model=List[DocumentSummary],
    responses=ERROR_RESPONSES,
)
async def list_documents(
    collection_id: str,
    org_id: str = Depends(get_org_id),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> List[DocumentSummary]:
    return [
        DocumentSummary(**row) for row in await service.list_documents(collection_id, org_id)
    ]


@app.post(
    "/knowledge/collections/{collection_id}/documents",
    response_model=IngestionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def ingest_document(
    collection_id: str,
    body: DocumentIngest,
    org_id: str = Depends(get_org_id),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> IngestionResponse:
    """Chunk, embed and store a document; create-only (delete and re-add to update)."""
    result = await service.ingest_document(
        collection_id, org_id, body.title, body.content, body.source, body.metadata
    )
    return IngestionResponse(**result.model_dump())


@app.delete(
    "/knowledge/documents/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
async def delete_document(
    document_id: str,
    org_id: str = Depends(get_org_id),
    service: KnowledgeService = Depends(get_knowledge_service),
) -> None:
    await service.delete_document(document_id, org_id)


# personas


@app.post(
    "/personas",
    response_model=PersonaResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_persona(
    body: PersonaCreate,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> PersonaResponse:
    persona = await service.create_persona(org_id, **body.model_dump())
    return PersonaResponse.model_validate(persona)


@app.get("/personas", response_model=List[PersonaResponse], responses=ERROR_RESPONSES)
async def list_personas(
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> List[PersonaResponse]:
    responses = []
    for persona in await service.list_personas(org_id):
        response = PersonaResponse.model_validate(persona)
        response.collection_ids = await service.list_collection_ids(persona.id, org_id)
        responses.append(response)
    return responses


@app.get("/personas/{persona_id}", response_model=PersonaResponse, responses=ERROR_RESPONSES)
async def get_persona(
    persona_id: str,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> PersonaResponse:
    response = PersonaResponse.model_validate(await service.get_persona(persona_id, org_id))
    response.collection_ids = await service.list_collection_ids(persona_id, org_id)
    return response


@app.put("/personas/{persona_id}", response_model=PersonaResponse, responses=ERROR_RESPONSES)
async def update_persona(
    persona_id: str,
    body: PersonaUpdate,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> PersonaResponse:
    persona = await service.update_persona(
        persona_id, org_id, **body.model_dump(exclude_unset=True)
    )
    response = PersonaResponse.model_validate(persona)
    response.collection_ids = await service.list_collection_ids(persona_id, org_id)
    return response


@app.delete(
    "/personas/{persona_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
async def delete_persona(
    persona_id: str,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> None:
    await service.delete_persona(persona_id, org_id)


@app.post(
    "/personas/{persona_id}/collections/{collection_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
async def assign_collection(
    persona_id: str,
    collection_id: str,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> None:
    await service.assign_collection(persona_id, collection_id, org_id)


@app.delete(
    "/personas/{persona_id}/collections/{collection_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
async def remove_collection(
    persona_id: str,
    collection_id: str,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> None:
    await service.remove_collection(persona_id, collection_id, org_id)


@app.get(
    "/personas/{persona_id}/tools",
    response_model=List[ToolBindingResponse],
    responses=ERROR_RESPONSES,
)
async def list_tools(
    persona_id: str,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> List[ToolBindingResponse]:
    tools = await service.list_tools(persona_id, org_id)
    return [ToolBindingResponse.model_validate(tool) for tool in tools]


@app.put(
    "/personas/{persona_id}/tools",
    response_model=ToolBindingResponse,
    responses=ERROR_RESPONSES,
)
async def set_tool(
    persona_id: str,
    body: ToolBindingRequest,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> ToolBindingResponse:
    """Enable a tool; an existing binding of the same type is updated in place."""
    tool = await service.add_tool(
        persona_id, org_id, body.tool_type, body.config, body.is_enabled
    )
    return ToolBindingResponse.model_validate(tool)


@app.patch(
    "/personas/{persona_id}/tools/{tool_id}",
    response_model=ToolBindingResponse,
    responses=ERROR_RESPONSES,
)
async def update_tool(
    persona_id: str,
    tool_id: str,
    body: ToolBindingUpdate,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> ToolBindingResponse:
    tool = await service.update_tool(
        persona_id, tool_id, org_id, body.config, body.is_enabled
    )
    return ToolBindingResponse.model_validate(tool)


@app.delete(
    "/personas/{persona_id}/tools/{tool_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ERROR_RESPONSES,
)
async def remove_tool(
    persona_id: str,
    tool_id: str,
    org_id: str = Depends(get_org_id),
    service: PersonaService = Depends(get_persona_service),
) -> None:
    await service.remove_tool(persona_id, tool_id, org_id)


@app.post(
    "/personas/{persona_id}/test",
    response_model=RAGResponse,
    responses=ERROR_RESPONSES,
)
async def test_persona(
    persona_id: str,
    body: PersonaTestRequest,
    org_id: str = Depends(get_org_id),
    service: ConversationService = Depends(get_conversation_service),
) -> RAGResponse:
    """One-shot question to a persona; nothing is stored."""
    result = await service.test_persona(persona_id, org_id, body.question)
    return RAGResponse(answer=result.answer, sources=result.sources)


# conversations


@app.post(
    "/conversations/messages",
    response_model=ProcessMessageResponse,
    responses=ERROR_RESPONSES,
)
async def post_message(
    body: MessageRequest,
    org_id: str = Depends(get_org_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ProcessMessageResponse:
    """
    Send a message to a persona.

    Handles:
    - New conversations (no ACTIVE conversation for the scoping fields)
    - Continuing conversations (same persona, channel, contact and session)
    """
    snapshot = await service.get_or_create(
        org_id,
        body.persona_id,
        channel_id=body.channel_id,
        contact_id=body.contact_id,
        session_id=body.session_id,
    )
    conversation_id = snapshot.conversation.id

    processed = await service.process_message(conversation_id, org_id, body.message)

    return ProcessMessageResponse(
        conversation_id=conversation_id,
        message=MessageResponse.model_validate(processed.message),
        sources=processed.sources,
    )


@app.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    persona_id: Optional[str] = None,
    channel_id: Optional[str] = None,
    conversation_status: Optional[ConversationStatus] = Query(None, alias="status"),
    page: int = 1,
    limit: int = 20,
    org_id: str = Depends(get_org_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    result = await service.list_conversations(
        org_id,
        persona_id=persona_id,
        channel_id=channel_id,
        status=conversation_status,
        page=page,
        limit=min(limit, 100),
    )
    result["items"] = [ConversationResponse.model_validate(c) for c in result["items"]]
    return ConversationListResponse(**result)


@app.get(
    "/conversations/{conversation_id}",
    response_model=ConversationResponse,
    responses=ERROR_RESPONSES,
)
async def get_conversation(
    conversation_id: str,
    org_id: str = Depends(get_org_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    return _conversation_response(await service.get_conversation(conversation_id, org_id))


@app.post(
    "/conversations/{conversation_id}/close",
    response_model=ConversationResponse,
    responses=ERROR_RESPONSES,
)
async def close_conversation(
    conversation_id: str,
    org_id: str = Depends(get_org_id),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    return ConversationResponse.model_validate(
        await service.close_conversation(conversation_id, org_id)
    )


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on port {settings.API_PORT}")

    uvicorn.run(
        "persona_rag.api.main:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        reload=True if settings.ENVIRONMENT == "development" else False,
        log_level=settings.LOG_LEVEL.lower(),
    )
