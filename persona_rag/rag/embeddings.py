"""Embedding client used for both chunks and queries."""

from typing import List, Optional

from langchain_core.embeddings import Embeddings

from persona_rag.exceptions import ProviderFailureError
from persona_rag.llm.openai_client import get_embeddings
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)


def normalize_for_embedding(text: str) -> str:
    """Replace newlines with spaces and trim, as the embedding input expects."""
    return text.replace("\n", " ").strip()


class EmbeddingClient:
    """
    Converts text to a fixed-length vector.

    The underlying LangChain ``Embeddings`` is injected; when omitted the
    OpenAI model from settings is created on first use, so a missing API key
    surfaces as ``ConfigurationMissingError`` at call time.
    """

    def __init__(self, embeddings: Optional[Embeddings] = None):
        self._embeddings = embeddings

    @property
    def embeddings(self) -> Embeddings:
        if self._embeddings is None:
            self._embeddings = get_embeddings()
        return self._embeddings

    async def embed(self, text: str) -> List[float]:
        """
        Embed a single text.

        Raises:
            ConfigurationMissingError: If no embedding credential is configured
            ProviderFailureError: If the embedding call fails
        """
        embeddings = self.embeddings

        try:
            return await embeddings.aembed_query(normalize_for_embedding(text))
        except Exception as e:
            logger.error(f"Embedding call failed: {e}")
            raise ProviderFailureError("embedding", str(e)) from e
