"""Utility for loading prompt templates from files."""

from typing import Dict

from persona_rag.config import settings
from .logger import get_logger

logger = get_logger(__name__)

# cache loaded prompts
_prompt_cache: Dict[str, str] = {}


def load_prompt(name: str) -> str:
    """
    Load a prompt template from file.

    Prompts are cached after first load.

    Args:
        name: Template name, without the ``.txt`` suffix

    Returns:
        Prompt template string

    Example:
        >>> prompt = load_prompt("rag_instructions")
        >>> "{locale}" in prompt
        True
    """
    if name in _prompt_cache:
        return _prompt_cache[name]

    prompt_file = settings.PROMPTS_DIR / f"{name}.txt"

    if not prompt_file.exists():
        logger.error(f"Prompt file not found: {prompt_file}")
        raise FileNotFoundError(f"Prompt file not found: {prompt_file}")

    try:
        prompt = prompt_file.read_text(encoding="utf-8").strip()
        _prompt_cache[name] = prompt
        logger.info(f"Loaded prompt '{name}' ({len(prompt)} chars)")
        return prompt

    except Exception as e:
        logger.error(f"Error loading prompt '{name}': {e}")
        raise


def get_rag_instructions(locale: str | None = None) -> str:
    """Behavioral instructions appended to every persona system prompt."""
    return load_prompt("rag_instructions").format(locale=locale or settings.RESPONSE_LOCALE)


def clear_prompt_cache() -> None:
    """Clear the prompt cache (useful for testing)."""
    _prompt_cache.clear()
    logger.info("Prompt cache cleared")
