"""Tests for the diagnosis engine: suspect commit, root cause, solution and file reading."""

import json

import pytest

from conftest import FakeLLM
from outagex.detection.simulator import (
    SIMULATED_HANDLER_SOURCE,
    SUSPICIOUS_COMMIT_DIFF,
    simulated_commits,
    simulated_logs,
)
from outagex.errors import ExternalServiceError
from outagex.log_storage import LogAnalyzer
from outagex.models import ErrorEvidence, Risk, SolutionType
from outagex.reasoning_agent import DiagnosisEngine
from outagex.reasoning_agent.agent import (
    FALLBACK_ROOT_CAUSE,
    fallback_solution,
    root_cause_from_record,
    solution_from_record,
)

ROOT_CAUSE_REPLY = json.dumps(
    {
        "description": "Unbounded recursion in processDataRecursively",
        "reasoning": "Deeply nested payloads exhaust the CPU budget",
        "evidence": ["CPU limit errors", "recursive helper added"],
        "confidence": 92,
    }
)

SOLUTION_REPLY = (
    "```json\n"
    + json.dumps(
        {
            "type": "patch",
            "description": "Limit recursion depth",
            "code": "export function processDataRecursively(obj, depth = 0) {\n  return obj;\n}",
            "confidence": "95%",
            "risk": "LOW",
            "estimatedTime": "3 minutes",
            "steps": ["Add depth", "Deploy"],
        }
    )
    + "\n```"
)


@pytest.fixture
def commits():
    return simulated_commits()


@pytest.fixture
def analysis():
    return LogAnalyzer().analyze(simulated_logs())


@pytest.mark.asyncio
async def test_pick_suspect_commit_matches_sha_prefix(commits):
    engine = DiagnosisEngine(llm=FakeLLM("`b2c3d4e`"))
    assert (await engine.pick_suspect_commit(commits, "CPU limit")).sha == "b2c3d4e5f6a7"


@pytest.mark.asyncio
async def test_pick_suspect_commit_falls_back_to_most_recent(commits):
    assert (await DiagnosisEngine(llm=FakeLLM("no idea")).pick_suspect_commit(commits, "x")) == commits[0]
    assert (await DiagnosisEngine(llm=FakeLLM("b2c")).pick_suspect_commit(commits, "x")) == commits[0]
    failing = FakeLLM(ExternalServiceError("groq", "rate limited", 429))
    assert (await DiagnosisEngine(llm=failing).pick_suspect_commit(commits, "x")) == commits[0]
    assert await DiagnosisEngine().pick_suspect_commit([], "x") is None


@pytest.mark.asyncio
async def test_diagnose_with_model_reads_resolved_file(commits, analysis, repository):
    llm = FakeLLM(ROOT_CAUSE_REPLY, SOLUTION_REPLY)
    outcome = await DiagnosisEngine(llm=llm).diagnose(
        analysis, commits[0], SUSPICIOUS_COMMIT_DIFF, [], repository=repository
    )

    assert outcome.root_cause.confidence == 92
    assert outcome.root_cause.suspected_commit == commits[0]
    assert outcome.solution.confidence == 95
    assert outcome.solution.risk == Risk.LOW
    assert outcome.solution.estimated_time == "3 minutes"
    assert outcome.solution.diff == SUSPICIOUS_COMMIT_DIFF
    assert outcome.solution.file_path == "src/worker/handler.ts"
    assert outcome.solution.metadata["file_resolution"] == "commit_fallback"
    # Solution prompt carries the current file content
    assert SIMULATED_HANDLER_SOURCE.splitlines()[0] in llm.prompts[1]


@pytest.mark.asyncio
async def test_diagnose_without_model_uses_fallbacks(commits, analysis):
    outcome = await DiagnosisEngine().diagnose(analysis, commits[0], "", [])
    assert outcome.root_cause.description == FALLBACK_ROOT_CAUSE.description
    assert outcome.root_cause.suspected_commit == commits[0]
    assert outcome.solution.type == SolutionType.PATCH
    assert outcome.solution.confidence == 88


@pytest.mark.asyncio
async def test_model_failure_or_garbage_falls_back(commits, analysis):
    llm = FakeLLM(ExternalServiceError("groq", "down"), "I cannot help with that")
    outcome = await DiagnosisEngine(llm=llm).diagnose(analysis, commits[0], "", [])
    assert outcome.root_cause.confidence == FALLBACK_ROOT_CAUSE.confidence
    assert outcome.solution.description == "Add depth limit to recursive function"


@pytest.mark.asyncio
async def test_missing_file_triggers_repository_search(commits, repository):
    evidence = ErrorEvidence.model_validate(
        {"errors": [{"message": "boom", "metadata": {"sourceFile": "dist/worker/handler.ts"}}]}
    )
    resolution, content = await DiagnosisEngine().read_source(evidence, commits[0], "", repository)
    assert resolution.path == "src/worker/handler.ts"
    assert resolution.strategy == "from_name_search"
    assert content == SIMULATED_HANDLER_SOURCE


def test_fallback_solution_has_fresh_id():
    assert fallback_solution().id != fallback_solution().id


def test_records_without_content_are_rejected(commits):
    assert root_cause_from_record({}, commits[0]) is None
    assert root_cause_from_record({"description": "  "}, None) is None
    assert solution_from_record({}, "") is None


def test_solution_record_coerces_unknown_values():
    solution = solution_from_record({"type": "reboot", "risk": "extreme", "confidence": 250}, "")
    assert solution.type == SolutionType.PATCH
    assert solution.risk == Risk.MEDIUM
    assert solution.confidence == 100
