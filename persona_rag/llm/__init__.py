"""LLM module for OpenAI clients."""

from persona_rag.llm.openai_client import (
    ChatCompletionClient,
    get_embeddings,
    get_llm,
    test_llm_connection,
)

__all__ = [
    "ChatCompletionClient",
    "get_embeddings",
    "get_llm",
    "test_llm_connection",
]
