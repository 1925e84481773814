"""Commit correlation and concurrent research fan-out."""

from __future__ import annotations

import asyncio
import logging

from outagex.errors import ExternalServiceError
from outagex.integrations.base import RepositoryHandle, ResearchClient
from outagex.models import CommitCorrelation, ResearchResult
from outagex.reasoning_agent.agent import DiagnosisEngine

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 10
COMMIT_HISTORY_LIMIT = 10


class CommitCorrelator:
    """Fetches recent commits, has the diagnosis engine pick a suspect, and loads its diff."""

    def __init__(self, engine: DiagnosisEngine, history_limit: int = COMMIT_HISTORY_LIMIT) -> None:
        self._engine = engine
        self._history_limit = history_limit

    async def correlate(self, repository: RepositoryHandle | None, error_pattern: str) -> CommitCorrelation:
        if repository is None:
            logger.warning("No source repository configured; cannot fetch commits")
            return CommitCorrelation()
        try:
            commits = await repository.get_commits(self._history_limit)
        except ExternalServiceError as e:
            logger.warning("Could not fetch commits for %s: %s", repository.full_name, e)
            return CommitCorrelation()
        if not commits:
            logger.warning("No commits found in %s", repository.full_name)
            return CommitCorrelation()

        suspect = await self._engine.pick_suspect_commit(commits, error_pattern)
        if suspect is None:
            return CommitCorrelation(commits=commits)
        logger.info("Suspected commit identified: %s", suspect.sha, extra={"repository": repository.full_name})

        try:
            diff = await repository.get_commit_diff(suspect.sha)
        except ExternalServiceError as e:
            logger.warning("Could not fetch diff for %s: %s", suspect.sha, e)
            diff = ""
        return CommitCorrelation(commits=commits, suspected_commit=suspect, diff=diff)


def merge_results(batches: list[list[ResearchResult]], limit: int = DEFAULT_MAX_RESULTS) -> list[ResearchResult]:
    """Flatten, drop repeated URLs (results without a URL are always kept), sort by relevance, cap."""
    seen: set[str] = set()
    merged: list[ResearchResult] = []
    for batch in batches:
        for result in batch:
            if result.url:
                if result.url in seen:
                    continue
                seen.add(result.url)
            merged.append(result)
    merged.sort(key=lambda r: r.relevance, reverse=True)
    return merged[:limit]


class Researcher:
    """
    Queries every research provider concurrently and merges their results.

    A provider that fails contributes nothing; the others still count.
    """

    def __init__(self, clients: list[ResearchClient] | None = None, max_results: int = DEFAULT_MAX_RESULTS) -> None:
        self._clients = list(clients or [])
        self._max_results = max_results

    async def research(self, error_pattern: str, technology: str = "") -> list[ResearchResult]:
        if not self._clients:
            logger.info("No research providers configured")
            return []
        query = f"{error_pattern} {technology}".strip()
        outcomes = await asyncio.gather(
            *(client.search(query) for client in self._clients),
            return_exceptions=True,
        )
        batches: list[list[ResearchResult]] = []
        for client, outcome in zip(self._clients, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Research provider %s failed: %s", client.name, outcome)
                continue
            batches.append(outcome)
        results = merge_results(batches, self._max_results)
        logger.info("Research complete: %d results", len(results), extra={"query": query[:120]})
        return results

    @staticmethod
    def key_findings(results: list[ResearchResult], limit: int = 5) -> list[str]:
        return [f"{r.source}: {r.summary}" for r in results[:limit]]
