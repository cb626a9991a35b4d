"""OpenAI LLM and embedding client wrappers."""

from typing import Any, Dict, List, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_openai import ChatOpenAI, OpenAIEmbeddings

from persona_rag.config import settings
from persona_rag.exceptions import ConfigurationMissingError, ProviderFailureError
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


def _require_api_key() -> str:
    if not settings.OPENAI_API_KEY:
        raise ConfigurationMissingError("OPENAI_API_KEY")
    return settings.OPENAI_API_KEY


def get_llm(
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    model: Optional[str] = None,
    **kwargs: Any,
) -> BaseChatModel:
    """
    Get configured OpenAI LLM instance.

    Args:
        temperature: Override default temperature (0.0-2.0)
        max_tokens: Override default max output tokens
        model: Override default model name
        **kwargs: Additional arguments for ChatOpenAI

    Returns:
        Configured ChatOpenAI instance

    Raises:
        ConfigurationMissingError: If no OpenAI API key is configured
    """
    llm_config = {
        "model": model or settings.LLM_MODEL,
        "temperature": temperature
        if temperature is not None
        else settings.DEFAULT_TEMPERATURE,
        "max_tokens": max_tokens or settings.LLM_MAX_TOKENS,
        "api_key": _require_api_key(),
        "timeout": settings.LLM_TIMEOUT_SECONDS,
        "max_retries": 0,
    }

    llm_config.update(kwargs)

    logger.debug(
        f"Initializing OpenAI LLM: {llm_config['model']} "
        f"(temp={llm_config['temperature']}, max_tokens={llm_config['max_tokens']})"
    )

    return ChatOpenAI(**llm_config)


def get_embeddings(model: Optional[str] = None) -> OpenAIEmbeddings:
    """
    Get the embeddings model for chunk and query vectorization.

    Raises:
        ConfigurationMissingError: If no OpenAI API key is configured
    """
    return OpenAIEmbeddings(
        model=model or settings.EMBEDDING_MODEL,
        api_key=_require_api_key(),
        timeout=settings.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )


class ChatCompletionClient:
    """
    Chat-completion provider used by the query engine.

    Builds a model per call so each persona's model and temperature apply,
    binds tool schemas when given, and returns the raw ``AIMessage``
    (finish reason in ``response_metadata``, requested calls in
    ``tool_calls``).
    """

    async def complete(
        self,
        messages: Sequence[BaseMessage],
        model: str,
        temperature: float,
        max_tokens: int,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> AIMessage:
        llm = get_llm(temperature=temperature, max_tokens=max_tokens, model=model)
        runnable = llm.bind_tools(tools, tool_choice="auto") if tools else llm

        try:
            response = await runnable.ainvoke(list(messages))
        except Exception as e:
            logger.error(f"Chat completion failed ({model}): {e}")
            raise ProviderFailureError("chat completion", str(e)) from e

        return response


def test_llm_connection() -> bool:
    """
    Test that LLM connection works.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        logger.info("Testing LLM connection...")
        llm = get_llm()

        response = llm.invoke("Say 'OK' if you can read this.")

        if response and response.content:
            logger.info("LLM connection successful")
            return True
        else:
            logger.error("LLM returned empty response")
            return False

    except Exception as e:
        logger.error(f"LLM connection failed: {e}")
        return False
