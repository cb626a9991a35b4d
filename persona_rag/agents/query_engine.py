"""RAG query engine: knowledge-base context plus a bounded tool-calling loop."""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from persona_rag.agents.graph import get_query_graph
from persona_rag.agents.state import QueryState, create_initial_state
from persona_rag.config import settings
from persona_rag.db.models import (
    Persona,
    PersonaCollection,
    PersonaTool,
    clamp_temperature,
)
from persona_rag.exceptions import NotFoundError
from persona_rag.llm.openai_client import ChatCompletionClient
from persona_rag.rag.retriever import SemanticSearch, format_retrieved_context
from persona_rag.rag.schemas import RAGResult
from persona_rag.tools import ToolExecutor, get_definitions, tool_type_name
from persona_rag.utils.logger import get_logger
from persona_rag.utils.prompts import get_rag_instructions

logger = get_logger(__name__)

NO_ANSWER = "No answer."

_HISTORY_ROLES = {
    "user": HumanMessage,
    "assistant": AIMessage,
    "system": SystemMessage,
}


def build_system_message(system_prompt: str, context: str) -> SystemMessage:
    """Persona prompt, delimited knowledge-base context and fixed instructions."""
    return SystemMessage(
        content=(
            f"{system_prompt}\n\n---\n\n"
            f"Knowledge base context:\n{context}\n\n---\n\n"
            f"{get_rag_instructions()}"
        )
    )


def history_to_messages(
    history: Optional[Sequence[Mapping[str, str]]], turns: int
) -> List[BaseMessage]:
    """Convert the last ``turns`` history entries into chat messages."""
    if not history or turns <= 0:
        return []

    messages: List[BaseMessage] = []
    for entry in list(history)[-turns:]:
        message_cls = _HISTORY_ROLES.get(str(entry.get("role", "")).lower())
        if message_cls is None:
            logger.warning(f"Skipping history entry with role {entry.get('role')!r}")
            continue
        messages.append(message_cls(content=entry.get("content", "")))
    return messages


def message_text(message: Optional[AIMessage]) -> str:
    """Plain text of a completion, joining text blocks of list content."""
    if message is None:
        return ""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


class RAGQueryEngine:
    """
    Answers a question as a persona.

    Each step of the query is a node of a LangGraph state machine:
    gather_context -> first_completion -> (tool_loop)* -> done. The tool loop
    runs at most ``max_tool_iterations`` rounds; when the cap is hit the last
    completion is still returned.
    """

    def __init__(
        self,
        session: AsyncSession,
        search: SemanticSearch,
        chat_client: ChatCompletionClient,
        tool_executor: ToolExecutor,
        max_tool_iterations: Optional[int] = None,
    ):
        self.session = session
        self.search = search
        self.chat_client = chat_client
        self.tool_executor = tool_executor
        self.max_tool_iterations = (
            max_tool_iterations
            if max_tool_iterations is not None
            else settings.MAX_TOOL_ITERATIONS
        )

    async def query(
        self,
        question: str,
        persona_id: str,
        org_id: str,
        history: Optional[Sequence[Mapping[str, str]]] = None,
    ) -> RAGResult:
        """
        Answer a question with the persona's knowledge base and tools.

        Args:
            question: User question
            persona_id: Persona answering
            org_id: Organization the persona must belong to
            history: Prior turns as ``{"role", "content"}``, oldest first

        Returns:
            RAGResult with the answer and the knowledge-base sources

        Raises:
            NotFoundError: If the persona is missing or outside the organization
            ProviderFailureError: If an embedding or completion call fails
        """
        state = create_initial_state(
            question, persona_id, org_id, history, self.max_tool_iterations
        )
        final_state = await get_query_graph().ainvoke(
            state, config={"configurable": {"engine": self}}
        )

        return RAGResult(
            answer=final_state.get("answer") or NO_ANSWER,
            sources=final_state.get("sources", []),
        )

    async def _load_persona(self, persona_id: str, org_id: str) -> Persona:
        query = select(Persona).where(Persona.id == persona_id, Persona.org_id == org_id)
        persona = (await self.session.exec(query)).first()
        if not persona:
            raise NotFoundError("Persona", persona_id)
        return persona

    async def gather_context(self, state: QueryState) -> Dict[str, Any]:
        """Load the persona, search its collections and build the prompt."""
        persona = await self._load_persona(state["persona_id"], state["org_id"])

        collection_ids = list(
            (
                await self.session.exec(
                    select(PersonaCollection.collection_id).where(
                        PersonaCollection.persona_id == persona.id
                    )
                )
            ).all()
        )

        bindings = (
            await self.session.exec(
                select(PersonaTool).where(
                    PersonaTool.persona_id == persona.id,
                    PersonaTool.is_enabled == True,  # noqa: E712
                )
            )
        ).all()

        sources = []
        if collection_ids:
            sources = await self.search.search(state["question"], collection_ids)

        messages: List[BaseMessage] = [
            build_system_message(persona.system_prompt, format_retrieved_context(sources))
        ]
        messages.extend(history_to_messages(state.get("history"), settings.HISTORY_TURNS))
        messages.append(HumanMessage(content=state["question"]))

        logger.info(
            f"Persona {persona.id}: {len(collection_ids)} collections, "
            f"{len(sources)} sources, {len(bindings)} tools"
        )

        return {
            "messages": messages,
            "sources": sources,
            "tools": get_definitions([b.tool_type for b in bindings]),
            "tool_configs": {tool_type_name(b.tool_type): b.config for b in bindings},
            "model": persona.model or settings.LLM_MODEL,
            "temperature": clamp_temperature(persona.temperature),
        }

    async def _complete(self, state: QueryState, messages: List[BaseMessage]) -> AIMessage:
        return await self.chat_client.complete(
            messages,
            model=state["model"],
            temperature=state["temperature"],
            max_tokens=settings.LLM_MAX_TOKENS,
            tools=state.get("tools") or None,
        )

    async def first_completion(self, state: QueryState) -> Dict[str, Any]:
        completion = await self._complete(state, state["messages"])
        return {"completion": completion}

    async def tool_loop(self, state: QueryState) -> Dict[str, Any]:
        """Execute the requested tool calls, then ask the model again."""
        completion = state["completion"]
        messages = list(state["messages"]) + [completion]
        tool_configs = state.get("tool_configs", {})

        for call in completion.tool_calls:
            result = await self.tool_executor.execute(
                call["name"], call["args"], tool_configs.get(call["name"])
            )
            messages.append(ToolMessage(content=result, tool_call_id=call["id"]))

        for invalid in completion.invalid_tool_calls:
            messages.append(
                ToolMessage(
                    content=(
                        f"Invalid arguments for tool {invalid.get('name')}: "
                        f"{invalid.get('error') or 'arguments are not valid JSON'}"
                    ),
                    tool_call_id=invalid.get("id") or "",
                )
            )

        iterations = state.get("iterations", 0) + 1
        logger.info(
            f"Tool loop iteration {iterations}: executed "
            f"{len(completion.tool_calls)} calls"
        )

        completion = await self._complete(state, messages)
        return {"messages": messages, "completion": completion, "iterations": iterations}

    async def done(self, state: QueryState) -> Dict[str, Any]:
        answer = message_text(state.get("completion")) or NO_ANSWER
        return {"answer": answer}
