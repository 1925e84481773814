"""Tests for sandbox validation, authenticity heuristics and risk scoring."""

import pytest

from conftest import FakeSandbox
from outagex.models import Risk, Solution, SolutionType, TestResult
from outagex.validation import SolutionValidator, assess_risk
from outagex.validation.sandbox import WRITE_CHUNK_CHARS, CommandResult
from outagex.validation.validator import authenticity_errors, check_extension

GOOD_CODE = "export function clamp(n: number) {\n  const max = 10;\n  return Math.min(n, max);\n}\n"


def _solution(code=GOOD_CODE, file_path="src/worker/handler.ts", **kwargs) -> Solution:
    fields = {
        "description": "Clamp the value",
        "steps": ["Apply patch", "Deploy"],
        "confidence": 90,
        "code": code,
        "metadata": {"file_path": file_path} if file_path else {},
    }
    fields.update(kwargs)
    return Solution(**fields)


def test_check_extension_defaults_to_js():
    assert check_extension(_solution(file_path=None)) == "js"
    assert check_extension(_solution(file_path="app/Page.TSX")) == "tsx"


def test_tokenless_thirty_char_string_is_rejected():
    errors = authenticity_errors(_solution(code="x" * 30))
    assert "Code is too short and contains no code constructs" in errors
    assert any("recognizable code constructs" in e for e in errors)


def test_short_code_with_const_passes_token_check():
    errors = authenticity_errors(_solution(code="const x = 1;"))
    assert errors == []


def test_placeholder_prose_is_rejected():
    code = "The updated implementation will be provided after refactoring the handler. " * 2
    errors = authenticity_errors(_solution(code=code))
    assert any("will be provided" in e for e in errors)


def test_missing_description_and_steps():
    errors = authenticity_errors(_solution(description="  ", steps=[]))
    assert "Description is missing" in errors
    assert "Solution steps are missing" in errors


@pytest.mark.asyncio
async def test_no_code_is_trivial_success():
    sandbox = FakeSandbox()
    result = await SolutionValidator(sandbox=sandbox).test_solution(
        _solution(code=None, type=SolutionType.ROLLBACK)
    )
    assert result.success is True
    assert sandbox.created == []


@pytest.mark.asyncio
async def test_typescript_check_runs_and_sandbox_is_destroyed():
    sandbox = FakeSandbox()
    result = await SolutionValidator(sandbox=sandbox, sandbox_timeout=30, command_timeout=10).test_solution(_solution())

    assert result.success is True
    assert sandbox.commands[0].startswith("printf %s ")
    assert sandbox.commands[0].endswith("> solution_check.ts.b64")
    assert sandbox.commands[1] == "base64 -d solution_check.ts.b64 > solution_check.ts && rm -f solution_check.ts.b64"
    assert sandbox.commands[2] == "npx tsc --noEmit solution_check.ts"
    assert sandbox.destroyed == sandbox.created == ["sandbox-1"]


@pytest.mark.asyncio
async def test_compiler_failure_is_only_a_warning():
    sandbox = FakeSandbox({"npx tsc": CommandResult(stderr="TS2304: Cannot find name 'Math2'", exit_code=2)})
    result = await SolutionValidator(sandbox=sandbox).test_solution(_solution())

    assert result.success is True
    assert result.warnings and "TS2304" in result.warnings[0]


@pytest.mark.asyncio
async def test_sandbox_error_fails_result_and_still_tears_down():
    sandbox = FakeSandbox(fail_on="node --check")
    result = await SolutionValidator(sandbox=sandbox).test_solution(_solution(file_path="index.js"))

    assert result.success is False
    assert any(e.startswith("Sandbox test failed") for e in result.errors)
    assert sandbox.destroyed == ["sandbox-1"]


@pytest.mark.asyncio
async def test_unknown_extension_only_checks_file_exists():
    sandbox = FakeSandbox()
    result = await SolutionValidator(sandbox=sandbox).test_solution(_solution(file_path="config/app.yaml"))
    assert result.success is True
    assert sandbox.commands[-1] == "test -f solution_check.yaml"


@pytest.mark.asyncio
async def test_without_sandbox_heuristics_still_apply():
    validator = SolutionValidator(sandbox=None)
    ok = await validator.test_solution(_solution())
    assert ok.success is True
    assert ok.warnings == ["Sandbox not configured; syntax check skipped"]

    bad = await validator.test_solution(_solution(code="x" * 30))
    assert bad.success is False


@pytest.mark.asyncio
async def test_validate_raises_risk_only_on_failure():
    validator = SolutionValidator(sandbox=None)
    passed = await validator.validate(_solution(risk=Risk.LOW))
    assert passed.risk == Risk.LOW
    assert passed.test_results.success is True

    failed = await validator.validate(_solution(code="x" * 30, risk=Risk.LOW))
    assert failed.test_results.success is False
    assert failed.risk == Risk.HIGH


def test_assess_risk_scores():
    assert assess_risk(Solution(type=SolutionType.ROLLBACK, confidence=90)) == Risk.LOW
    assert assess_risk(Solution(type=SolutionType.PATCH, confidence=90)) == Risk.MEDIUM
    assert assess_risk(Solution(type=SolutionType.CONFIG_FIX, confidence=60)) == Risk.MEDIUM
    assert assess_risk(Solution(type=SolutionType.PATCH, confidence=40)) == Risk.HIGH
    failed = TestResult(success=False, errors=["bad"])
    assert assess_risk(Solution(type=SolutionType.ROLLBACK, confidence=90, test_results=failed)) == Risk.HIGH


@pytest.mark.asyncio
async def test_large_code_is_written_in_bounded_chunks():
    code = "export const table = [\n" + "  'x',\n" * 40_000 + "];\n"
    sandbox = FakeSandbox()
    result = await SolutionValidator(sandbox=sandbox).test_solution(_solution(code=code))

    assert result.success is True
    writes = [c for c in sandbox.commands if c.startswith("printf %s ")]
    assert len(writes) > 1
    assert writes[0].endswith("> solution_check.ts.b64")
    assert all(c.endswith(">> solution_check.ts.b64") for c in writes[1:])
    assert max(len(c) for c in sandbox.commands) < WRITE_CHUNK_CHARS + 100


@pytest.mark.asyncio
async def test_failed_write_is_reported():
    sandbox = FakeSandbox({"printf": CommandResult(stderr="No space left on device", exit_code=1)})
    result = await SolutionValidator(sandbox=sandbox).test_solution(_solution())

    assert result.success is False
    assert "Could not write solution file: No space left on device" in result.errors
    assert sandbox.destroyed == ["sandbox-1"]
