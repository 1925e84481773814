"""Sandbox syntax checks and authenticity heuristics for proposed solutions."""

from __future__ import annotations

import logging
import re
import shlex
from pathlib import PurePosixPath

from outagex.config import get_settings
from outagex.models import Risk, Solution, SolutionType, TestResult
from outagex.validation.sandbox import SandboxRuntime

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "js"
CHECK_FILE_STEM = "solution_check"

# {path} is substituted with the shell-quoted check file
CHECK_COMMANDS = {
    "ts": "npx tsc --noEmit {path}",
    "tsx": "npx tsc --noEmit --jsx preserve {path}",
    "js": "node --check {path}",
    "jsx": "node --check {path}",
    "mjs": "node --check {path}",
    "cjs": "node --check {path}",
    "py": "python3 -m py_compile {path}",
}
FILE_EXISTS_COMMAND = "test -f {path}"

PLACEHOLDER_PHRASES = (
    "will be provided",
    "code will be provided",
    "after refactoring",
    "focusing on",
)
CODE_TOKEN_RE = re.compile(r"\b(?:function|const|let|var|import|export|class|interface|def|return)\b|=>")
SHORT_CODE_LENGTH = 50

_RISK_ORDER = {Risk.LOW: 0, Risk.MEDIUM: 1, Risk.HIGH: 2}


def check_extension(solution: Solution) -> str:
    """Extension of ``metadata["file_path"]`` (lowercased), or the default."""
    suffix = PurePosixPath(solution.file_path or "").suffix.lstrip(".").lower()
    return suffix or DEFAULT_EXTENSION


def authenticity_errors(solution: Solution) -> list[str]:
    """Reasons the solution looks like prose or an incomplete proposal rather than real code."""
    code = solution.code or ""
    lowered = code.lower()
    errors: list[str] = []

    phrase = next((p for p in PLACEHOLDER_PHRASES if p in lowered), None)
    if phrase:
        errors.append(f"Code appears to be a text description, not actual code (contains '{phrase}')")

    has_tokens = CODE_TOKEN_RE.search(code) is not None
    if len(code) < SHORT_CODE_LENGTH and not has_tokens:
        errors.append("Code is too short and contains no code constructs")
    if not has_tokens:
        errors.append("Code does not contain recognizable code constructs (functions, variables, imports)")

    if not solution.description.strip():
        errors.append("Description is missing")
    if not solution.steps:
        errors.append("Solution steps are missing")
    return errors


def assess_risk(solution: Solution) -> Risk:
    """
    Score a solution's risk from its type, confidence and test outcome.

    Patch 3, config fix 2, rollback 1; confidence below 70 adds 2 and below
    50 another 3; a failed test adds 5. Six or more is high, three or more
    medium.
    """
    score = {
        SolutionType.ROLLBACK: 1,
        SolutionType.CONFIG_FIX: 2,
        SolutionType.PATCH: 3,
    }.get(solution.type, 0)
    if solution.confidence < 70:
        score += 2
    if solution.confidence < 50:
        score += 3
    if solution.test_results is not None and not solution.test_results.success:
        score += 5
    if score >= 6:
        return Risk.HIGH
    if score >= 3:
        return Risk.MEDIUM
    return Risk.LOW


class SolutionValidator:
    """
    Validates candidate fix code before it is proposed.

    Code is written into a fresh sandbox and syntax-checked with a command
    chosen by file extension. A failing compiler is only a warning; the
    authenticity heuristics decide success. The sandbox is destroyed on
    every exit path, and test_solution never raises.
    """

    def __init__(
        self,
        sandbox: SandboxRuntime | None = None,
        sandbox_timeout: float | None = None,
        command_timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._sandbox = sandbox
        self._sandbox_timeout = sandbox_timeout or settings.sandbox_timeout_seconds
        self._command_timeout = command_timeout or settings.sandbox_command_timeout_seconds

    async def test_solution(self, solution: Solution) -> TestResult:
        if not solution.code:
            return TestResult(success=True, output="No code validation required")
        try:
            return await self._test_code(solution)
        except Exception as e:  # noqa: BLE001
            logger.error("Solution validation failed unexpectedly", extra={"solution_id": solution.id}, exc_info=True)
            return TestResult(success=False, errors=[f"Failed to test solution: {e}"])

    async def validate(self, solution: Solution) -> Solution:
        """Attach the test result; a failing result raises the solution's risk via assess_risk."""
        result = await self.test_solution(solution)
        validated = solution.model_copy(update={"test_results": result})
        if not result.success:
            assessed = assess_risk(validated)
            if _RISK_ORDER[assessed] > _RISK_ORDER[validated.risk]:
                validated = validated.model_copy(update={"risk": assessed})
        return validated

    async def _test_code(self, solution: Solution) -> TestResult:
        errors: list[str] = []
        warnings: list[str] = []
        output = ""

        if self._sandbox is None:
            logger.warning("No sandbox runtime configured; skipping syntax check")
            warnings.append("Sandbox not configured; syntax check skipped")
        else:
            output = await self._syntax_check(solution, errors, warnings)

        errors.extend(authenticity_errors(solution))
        success = not errors
        if success:
            logger.info("Solution passed validation", extra={"solution_id": solution.id})
        else:
            logger.warning(
                "Solution failed validation",
                extra={"solution_id": solution.id, "errors": errors, "preview": (solution.code or "")[:200]},
            )
        summary = output or ("Syntax validation passed" if self._sandbox else "Heuristic validation only")
        return TestResult(
            success=success,
            output=summary if success else "Code testing failed:\n" + "\n".join(errors),
            errors=errors or None,
            warnings=warnings or None,
        )

    async def _syntax_check(self, solution: Solution, errors: list[str], warnings: list[str]) -> str:
        """Run the sandbox half of validation, appending to errors/warnings; returns captured output."""
        extension = check_extension(solution)
        filename = f"{CHECK_FILE_STEM}.{extension}"
        path = shlex.quote(filename)
        handle: str | None = None
        try:
            handle = await self._sandbox.create(self._sandbox_timeout)
            written = await self._sandbox.write_file(handle, filename, solution.code or "", self._command_timeout)
            if written.exit_code != 0:
                errors.append(f"Could not write solution file: {written.stderr.strip() or written.exit_code}")
                return ""

            command = CHECK_COMMANDS.get(extension)
            if command is None:
                result = await self._sandbox.run(handle, FILE_EXISTS_COMMAND.format(path=path), self._command_timeout)
                if result.exit_code != 0:
                    errors.append("File was not created")
                    return ""
                return "File written successfully; no syntax checker for this extension"

            result = await self._sandbox.run(handle, command.format(path=path), self._command_timeout)
            if result.exit_code != 0:
                detail = (result.stderr or result.stdout).strip()
                warnings.append(f"Syntax check exited with code {result.exit_code}: {detail}")
            return result.stdout
        except Exception as e:  # noqa: BLE001
            logger.warning("Sandbox check failed: %s", e, extra={"solution_id": solution.id}, exc_info=True)
            errors.append(f"Sandbox test failed: {e}")
            return ""
        finally:
            if handle is not None:
                try:
                    await self._sandbox.destroy(handle)
                except Exception as e:  # noqa: BLE001
                    logger.warning("Error destroying sandbox %s: %s", handle, e)
