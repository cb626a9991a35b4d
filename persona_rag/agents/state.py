"""State schema for the RAG query graph."""

from typing import Any, Dict, List, Mapping, Optional, Sequence, TypedDict

from langchain_core.messages import AIMessage, BaseMessage

from persona_rag.rag.schemas import RAGSource


class QueryState(TypedDict, total=False):
    """
    State flowing through the query graph.

    Attributes:
        question: Current user question
        persona_id: Persona answering the question
        org_id: Organization the persona must belong to
        history: Prior turns as ``{"role", "content"}`` mappings, oldest first
        messages: Running message list sent to the chat model
        sources: Knowledge-base snippets found for the question
        tools: Tool schemas offered to the model (empty when none are enabled)
        tool_configs: Binding config per canonical tool name
        model: Chat model of the persona
        temperature: Clamped persona temperature
        completion: Latest model response
        iterations: Tool-loop rounds executed so far
        max_iterations: Cap on tool-loop rounds
        answer: Final answer text
    """

    # inputs
    question: str
    persona_id: str
    org_id: str
    history: Optional[Sequence[Mapping[str, str]]]

    # assembled context
    messages: List[BaseMessage]
    sources: List[RAGSource]
    tools: List[Dict[str, Any]]
    tool_configs: Dict[str, Optional[Dict[str, Any]]]
    model: str
    temperature: float

    # tool loop
    completion: Optional[AIMessage]
    iterations: int
    max_iterations: int

    # output
    answer: Optional[str]


def create_initial_state(
    question: str,
    persona_id: str,
    org_id: str,
    history: Optional[Sequence[Mapping[str, str]]] = None,
    max_iterations: int = 5,
) -> QueryState:
    """
    Create the initial query state.

    Example:
        >>> state = create_initial_state("Olá", "persona-1", "org-1")
        >>> state["iterations"]
        0
    """
    return QueryState(
        question=question,
        persona_id=persona_id,
        org_id=org_id,
        history=history,
        messages=[],
        sources=[],
        tools=[],
        tool_configs={},
        completion=None,
        iterations=0,
        max_iterations=max_iterations,
        answer=None,
    )


def requested_tool_calls(state: QueryState) -> bool:
    """Check if the latest completion stopped to request tool calls."""
    completion = state.get("completion")
    if completion is None:
        return False
    return completion.response_metadata.get("finish_reason") == "tool_calls"
