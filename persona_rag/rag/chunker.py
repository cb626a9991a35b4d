"""Paragraph-based text chunking for knowledge base ingestion."""

import re
from typing import Any, List

from langchain_text_splitters import TextSplitter

from persona_rag.config import settings
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\n+")

# the fallback keeps at most this many chunk sizes of unstructured text
FALLBACK_SIZE_FACTOR = 4


def chunk_text(
    text: str,
    max_chunk_size: int | None = None,
    overlap_words: int | None = None,
) -> List[str]:
    """
    Split document text into overlapping, paragraph-aligned chunks.

    Paragraphs (separated by blank lines) are packed into a buffer until the
    next one would push it past ``max_chunk_size`` characters. The buffer is
    then emitted and the next one starts with the last ``overlap_words``
    words of the emitted chunk, so context carries across the boundary.

    Text that yields no chunk but is not blank becomes a single chunk holding
    its first ``4 * max_chunk_size`` characters. This does not cover long
    unstructured text in full.

    Args:
        text: Raw document text
        max_chunk_size: Character budget per chunk (defaults to settings.CHUNK_SIZE)
        overlap_words: Words repeated from the previous chunk
            (defaults to settings.CHUNK_OVERLAP_WORDS)

    Returns:
        Ordered list of chunk strings; the position is the chunk index

    Example:
        >>> chunk_text("First paragraph.\\n\\nSecond paragraph.", 20, 1)
        ['First paragraph.', 'paragraph.\\n\\nSecond paragraph.']
    """
    if max_chunk_size is None:
        max_chunk_size = settings.CHUNK_SIZE
    if overlap_words is None:
        overlap_words = settings.CHUNK_OVERLAP_WORDS

    chunks: List[str] = []
    current = ""

    for paragraph in PARAGRAPH_BREAK.split(text):
        trimmed = paragraph.strip()
        if not trimmed:
            continue

        if current and len(current) + len(trimmed) > max_chunk_size:
            chunks.append(current.strip())
            carried = current.split()[-overlap_words:] if overlap_words > 0 else []
            current = (" ".join(carried) + "\n\n" + trimmed) if carried else trimmed
        else:
            current = f"{current}\n\n{trimmed}" if current else trimmed

    if current.strip():
        chunks.append(current.strip())

    if not chunks and text.strip():
        chunks.append(text.strip()[: max_chunk_size * FALLBACK_SIZE_FACTOR])

    return chunks


class ParagraphChunker(TextSplitter):
    """
    LangChain text splitter wrapping :func:`chunk_text`.

    ``overlap_words`` counts words, not characters, so the base class
    character overlap is unused.
    """

    def __init__(
        self,
        max_chunk_size: int | None = None,
        overlap_words: int | None = None,
        **kwargs: Any,
    ) -> None:
        chunk_size = max_chunk_size or settings.CHUNK_SIZE
        super().__init__(chunk_size=chunk_size, chunk_overlap=0, **kwargs)
        self._overlap_words = (
            settings.CHUNK_OVERLAP_WORDS if overlap_words is None else overlap_words
        )

    def split_text(self, text: str) -> List[str]:
        chunks = chunk_text(text, self._chunk_size, self._overlap_words)
        logger.debug(f"Split {len(text)} chars into {len(chunks)} chunks")
        return chunks
