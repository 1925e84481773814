"""Perplexity research provider (chat completions with citations)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from outagex.integrations.base import ResearchClient
from outagex.models import ResearchResult
from outagex.research.web_search import request_json

logger = logging.getLogger(__name__)

PERPLEXITY_URL = "https://api.perplexity.ai/chat/completions"

_RESEARCH_PROMPT = (
    "Research this production error. Explain the most likely causes and known fixes, "
    "citing sources.\n\nError: {query}"
)


def results_from_response(data: dict[str, Any]) -> list[ResearchResult]:
    """
    Map a completion with citations to research results.

    Each citation becomes one result, relevance 0.9 falling by 0.1 per
    position (floor 0.1), all sharing the answer text as summary. An
    answer without citations becomes a single result.
    """
    try:
        answer = data["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError):
        answer = ""

    citations: list[dict[str, str]] = []
    for item in data.get("search_results") or []:
        if isinstance(item, dict) and item.get("url"):
            citations.append({"url": item["url"], "title": item.get("title") or ""})
    if not citations:
        for item in data.get("citations") or []:
            if isinstance(item, str) and item:
                citations.append({"url": item, "title": ""})

    results = [
        ResearchResult(
            source="Perplexity AI",
            title=citation["title"] or f"Source {index + 1}",
            summary=answer[:200],
            url=citation["url"],
            relevance=max(0.1, round(0.9 - index * 0.1, 2)),
        )
        for index, citation in enumerate(citations)
    ]
    if not results and answer:
        results.append(
            ResearchResult(source="Perplexity AI", title="Research Response", summary=answer[:500], relevance=0.9)
        )
    return results


class PerplexityResearchClient(ResearchClient):
    name = "perplexity"

    def __init__(
        self,
        api_key: str,
        model: str = "sonar",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._client = client

    async def search(self, query: str) -> list[ResearchResult]:
        payload = {
            "model": self._model,
            "messages": [{"role": "user", "content": _RESEARCH_PROMPT.format(query=query)}],
        }
        data = await request_json(
            "perplexity",
            "POST",
            PERPLEXITY_URL,
            client=self._client,
            timeout=self._timeout,
            json=payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        results = results_from_response(data if isinstance(data, dict) else {})
        logger.info("Perplexity returned %d results", len(results))
        return results
