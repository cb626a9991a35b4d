"""Lex Corpus legal search tools (case law and legislation)."""

import json
from typing import Any, Dict, List, Optional

import httpx

from persona_rag.config import settings
from persona_rag.exceptions import ConfigurationMissingError
from persona_rag.utils.logger import get_logger

logger = get_logger(__name__)

SUMMARY_LIMIT = 400
STATUTE_CONTENT_LIMIT = 600
RESULT_LIMIT = 5


def _format_similarity(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return None


def _truncate(text: Optional[str], limit: int) -> Optional[str]:
    return text[:limit] if text else None


class LexCorpusSearch:
    """
    Client for the Lex Corpus ``/api/search`` endpoint.

    Each search opens a short-lived ``httpx.AsyncClient`` bounded by
    ``TOOL_TIMEOUT_SECONDS``. A transport can be injected for tests.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self.timeout = timeout if timeout is not None else settings.TOOL_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def base_url(self) -> str:
        base_url = self._base_url or settings.LEX_CORPUS_URL
        if not base_url:
            raise ConfigurationMissingError("LEX_CORPUS_URL")
        return base_url.rstrip("/")

    async def _search(self, body: Dict[str, Any]) -> httpx.Response:
        url = f"{self.base_url}/api/search"
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(url, json=body)

    @staticmethod
    def _results(response: httpx.Response) -> List[Dict[str, Any]]:
        payload = response.json() or {}
        return (payload.get("data") or {}).get("results") or []

    async def search_case_law(
        self,
        query: str,
        tribunal: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> str:
        """Search court rulings; returns serialized results or a message."""
        body: Dict[str, Any] = {
            "query": query,
            "contentType": "jurisprudencia",
            "topK": RESULT_LIMIT,
        }
        if tribunal:
            body["tribunal"] = tribunal
        if date_from:
            body["dateFrom"] = date_from
        if date_to:
            body["dateTo"] = date_to

        response = await self._search(body)
        if response.is_error:
            logger.warning(f"Case law search failed with status {response.status_code}")
            return f"Error searching case law: {response.status_code}"

        results = self._results(response)
        logger.info(f"Case law search returned {len(results)} results")
        if not results:
            return "No relevant court decisions found."

        return json.dumps(
            [
                {
                    "tribunal": r.get("tribunal"),
                    "processo": r.get("processo"),
                    "data": r.get("data_acordao"),
                    "relator": r.get("relator"),
                    "sumario": _truncate(r.get("sumario"), SUMMARY_LIMIT),
                    "url": r.get("url"),
                    "similarity": _format_similarity(r.get("similarity")),
                }
                for r in results
            ],
            ensure_ascii=False,
        )

    async def search_statutes(self, query: str) -> str:
        """Search legislation; returns serialized results or a message."""
        response = await self._search(
            {"query": query, "contentType": "legislacao", "topK": RESULT_LIMIT}
        )
        if response.is_error:
            logger.warning(f"Legislation search failed with status {response.status_code}")
            return f"Error searching legislation: {response.status_code}"

        results = self._results(response)
        logger.info(f"Legislation search returned {len(results)} results")
        if not results:
            return "No relevant legislation found."

        return json.dumps(
            [
                {
                    "titulo": r.get("title"),
                    "conteudo": _truncate(r.get("content"), STATUTE_CONTENT_LIMIT),
                    "similarity": _format_similarity(r.get("similarity")),
                }
                for r in results
            ],
            ensure_ascii=False,
        )
