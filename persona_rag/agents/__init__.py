"""RAG query engine built as a LangGraph state machine."""

from persona_rag.agents.graph import (
    create_query_graph,
    get_query_graph,
    route_after_completion,
)
from persona_rag.agents.query_engine import NO_ANSWER, RAGQueryEngine
from persona_rag.agents.state import (
    QueryState,
    create_initial_state,
    requested_tool_calls,
)

__all__ = [
    # state
    "QueryState",
    "create_initial_state",
    "requested_tool_calls",
    # graph
    "create_query_graph",
    "get_query_graph",
    "route_after_completion",
    # engine
    "NO_ANSWER",
    "RAGQueryEngine",
]
