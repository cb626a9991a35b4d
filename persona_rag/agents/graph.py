"""LangGraph orchestration for the RAG query engine."""

from functools import lru_cache
from typing import TYPE_CHECKING, Any, Dict, Literal

from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from persona_rag.agents.state import QueryState, requested_tool_calls
from persona_rag.utils.logger import get_logger

if TYPE_CHECKING:
    from persona_rag.agents.query_engine import RAGQueryEngine

logger = get_logger(__name__)


def _engine(config: RunnableConfig) -> "RAGQueryEngine":
    engine = config.get("configurable", {}).get("engine")
    if engine is None:
        raise ValueError("Query graph invoked without an engine in config['configurable']")
    return engine


async def gather_context_node(state: QueryState, config: RunnableConfig) -> Dict[str, Any]:
    return await _engine(config).gather_context(state)


async def first_completion_node(state: QueryState, config: RunnableConfig) -> Dict[str, Any]:
    return await _engine(config).first_completion(state)


async def tool_loop_node(state: QueryState, config: RunnableConfig) -> Dict[str, Any]:
    return await _engine(config).tool_loop(state)


async def done_node(state: QueryState, config: RunnableConfig) -> Dict[str, Any]:
    return await _engine(config).done(state)


def route_after_completion(state: QueryState) -> Literal["tool_loop", "done"]:
    """
    Route after a model completion.

    Routes to:
    - tool_loop: The model requested tool calls and the iteration cap is not reached
    - done: Any other stop reason, or the cap was hit
    """
    if not requested_tool_calls(state):
        return "done"

    iterations = state.get("iterations", 0)
    max_iterations = state.get("max_iterations", 5)

    if iterations >= max_iterations:
        logger.warning(
            f"Tool loop cap reached ({iterations}/{max_iterations}), "
            f"returning last completion"
        )
        return "done"

    logger.info(f"Routing: completion -> tool_loop (iteration {iterations + 1})")
    return "tool_loop"


def create_query_graph() -> StateGraph:
    """
    Create the query graph.

    Nodes take the engine answering the query from
    ``config["configurable"]["engine"]``, so one compiled graph serves every
    request.

    Graph structure:
        START -> gather_context -> first_completion -> [tool_loop | done]
                 tool_loop -> [tool_loop | done]
                 done -> END

    Returns:
        Uncompiled StateGraph
    """
    graph = StateGraph(QueryState)

    graph.add_node("gather_context", gather_context_node)
    graph.add_node("first_completion", first_completion_node)
    graph.add_node("tool_loop", tool_loop_node)
    graph.add_node("done", done_node)

    graph.set_entry_point("gather_context")
    graph.add_edge("gather_context", "first_completion")

    graph.add_conditional_edges(
        "first_completion",
        route_after_completion,
        {"tool_loop": "tool_loop", "done": "done"},
    )
    graph.add_conditional_edges(
        "tool_loop",
        route_after_completion,
        {"tool_loop": "tool_loop", "done": "done"},
    )

    graph.add_edge("done", END)

    return graph


@lru_cache(maxsize=1)
def get_query_graph():
    """
    Get the compiled query graph, built once per process.

    Example:
        >>> graph = get_query_graph()
        >>> result = await graph.ainvoke(state, config={"configurable": {"engine": engine}})
    """
    compiled = create_query_graph().compile()
    logger.info("Query graph compiled")
    return compiled
