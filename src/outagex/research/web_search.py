"""Brave Search and Exa research providers, plus the shared JSON request helper."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlparse

import httpx

from outagex.errors import ExternalServiceError
from outagex.integrations.base import ResearchClient
from outagex.models import ResearchResult

logger = logging.getLogger(__name__)

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
EXA_SEARCH_URL = "https://api.exa.ai/search"

DEFAULT_RESULT_COUNT = 5
BRAVE_RELEVANCE = 0.7
EXA_RELEVANCE = 0.8
SUMMARY_CHARS = 500


async def request_json(
    service: str,
    method: str,
    url: str,
    *,
    client: httpx.AsyncClient | None,
    timeout: float,
    **kwargs: Any,
) -> Any:
    """Send one request and decode the JSON body; HTTP and decode failures become ExternalServiceError."""
    try:
        if client is not None:
            response = await client.request(method, url, timeout=timeout, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=timeout) as http:
                response = await http.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPStatusError as e:
        raise ExternalServiceError(service, e.response.text[:500], status_code=e.response.status_code) from e
    except (httpx.HTTPError, ValueError) as e:
        raise ExternalServiceError(service, str(e)) from e


def source_domain(url: str | None) -> str:
    """Hostname without a leading ``www.``; "Unknown" when the URL has none."""
    host = urlparse(url or "").hostname
    if not host:
        return "Unknown"
    return host[4:] if host.startswith("www.") else host


def _relevance(value: Any, default: float) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def brave_results(data: dict[str, Any]) -> list[ResearchResult]:
    web = data.get("web") if isinstance(data.get("web"), dict) else {}
    results = []
    for item in web.get("results") or []:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        results.append(
            ResearchResult(
                source=source_domain(item["url"]),
                title=item.get("title") or "",
                summary=(item.get("description") or item.get("snippet") or "")[:SUMMARY_CHARS],
                url=item["url"],
                relevance=BRAVE_RELEVANCE,
            )
        )
    return results


def exa_results(data: dict[str, Any]) -> list[ResearchResult]:
    results = []
    for item in data.get("results") or []:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        results.append(
            ResearchResult(
                source=source_domain(item["url"]),
                title=item.get("title") or "",
                summary=(item.get("text") or item.get("snippet") or "")[:SUMMARY_CHARS],
                url=item["url"],
                relevance=_relevance(item.get("score"), EXA_RELEVANCE),
            )
        )
    return results


class BraveResearchClient(ResearchClient):
    """Brave Search web results for the error query."""

    name = "brave"

    def __init__(
        self,
        api_key: str,
        count: int = DEFAULT_RESULT_COUNT,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._count = count
        self._timeout = timeout
        self._client = client

    async def search(self, query: str) -> list[ResearchResult]:
        data = await request_json(
            "brave",
            "GET",
            BRAVE_SEARCH_URL,
            client=self._client,
            timeout=self._timeout,
            params={"q": query, "count": self._count},
            headers={"X-Subscription-Token": self._api_key, "Accept": "application/json"},
        )
        results = brave_results(data if isinstance(data, dict) else {})
        logger.info("Brave returned %d results", len(results))
        return results


class ExaResearchClient(ResearchClient):
    """Exa semantic search, looking for similar incidents and their resolutions."""

    name = "exa"

    def __init__(
        self,
        api_key: str,
        num_results: int = DEFAULT_RESULT_COUNT,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._num_results = num_results
        self._timeout = timeout
        self._client = client

    async def search(self, query: str) -> list[ResearchResult]:
        payload = {
            "query": f"{query} production incident resolution",
            "numResults": self._num_results,
            "contents": {"text": {"maxCharacters": SUMMARY_CHARS}},
        }
        data = await request_json(
            "exa",
            "POST",
            EXA_SEARCH_URL,
            client=self._client,
            timeout=self._timeout,
            json=payload,
            headers={"x-api-key": self._api_key},
        )
        results = exa_results(data if isinstance(data, dict) else {})
        logger.info("Exa returned %d results", len(results))
        return results
