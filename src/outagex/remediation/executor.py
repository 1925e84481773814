"""Apply an approved solution through the source repository or deployment platform."""

from __future__ import annotations

import logging

from outagex.config import get_settings
from outagex.errors import ExternalServiceError
from outagex.integrations.base import DeploymentClient, SourceRepositoryClient
from outagex.models import ExecutionResult, Solution, SolutionType

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "outagex/fix"


def fix_branch_name(solution: Solution) -> str:
    return f"{BRANCH_PREFIX}-{solution.id.split('-')[-1][:8]}"


def pull_request_body(solution: Solution) -> str:
    lines = [
        "## Automated fix",
        "",
        solution.description,
        "",
        f"**Type:** {solution.type.value}  ",
        f"**Risk:** {solution.risk.value}  ",
        f"**Confidence:** {solution.confidence}%",
    ]
    if solution.reasoning:
        lines += ["", "### Reasoning", "", solution.reasoning]
    if solution.steps:
        lines += ["", "### Steps", ""] + [f"{i}. {step}" for i, step in enumerate(solution.steps, start=1)]
    if solution.test_results is not None:
        status = "passed" if solution.test_results.success else "failed"
        lines += ["", f"Validation {status}."]
        for error in solution.test_results.errors or []:
            lines.append(f"- {error}")
    return "\n".join(lines)


class SolutionExecutor:
    """
    Executes solutions; never raises.

    Patch and config_fix solutions are committed to a fresh branch and
    opened as a pull request, merged right away when auto_merge is set.
    Rollback and restart solutions go to the deployment platform.
    """

    def __init__(
        self,
        repository: SourceRepositoryClient | None = None,
        deployments: DeploymentClient | None = None,
        auto_merge: bool = True,
        base_branch: str | None = None,
    ) -> None:
        self._repository = repository
        self._deployments = deployments
        self._auto_merge = auto_merge
        self._base_branch = base_branch or get_settings().default_branch

    async def execute(self, solution: Solution) -> ExecutionResult:
        logger.info("Executing solution", extra={"solution_id": solution.id, "type": solution.type.value})
        try:
            if solution.type in (SolutionType.PATCH, SolutionType.CONFIG_FIX):
                return await self._apply_patch(solution)
            return await self._deploy(solution)
        except ExternalServiceError as e:
            logger.warning("Solution execution failed: %s", e, extra={"solution_id": solution.id}, exc_info=True)
            return ExecutionResult(success=False, message="Solution execution failed", error=str(e))

    async def _apply_patch(self, solution: Solution) -> ExecutionResult:
        meta = solution.metadata
        owner, repo, path = meta.get("github_owner"), meta.get("github_repo"), solution.file_path
        missing = [
            name
            for name, value in (("code", solution.code), ("file path", path), ("repository owner", owner), ("repository name", repo))
            if not value
        ]
        if self._repository is None:
            missing.insert(0, "source repository integration")
        if missing:
            error = "Missing " + ", ".join(missing)
            logger.warning("Cannot apply patch: %s", error, extra={"solution_id": solution.id})
            return ExecutionResult(success=False, message="Cannot apply patch", error=error)

        branch = fix_branch_name(solution)
        await self._repository.create_branch(owner, repo, branch, self._base_branch)
        await self._repository.write_file(
            owner,
            repo,
            path,
            solution.code,
            f"fix: {solution.description or 'automated incident fix'}",
            branch,
        )
        pr = await self._repository.open_pull_request(
            owner,
            repo,
            f"[OutageX] {solution.description or 'Automated incident fix'}",
            pull_request_body(solution),
            branch,
            self._base_branch,
        )
        logger.info("Pull request opened: %s", pr.url, extra={"solution_id": solution.id, "pr_number": pr.number})

        if not self._auto_merge:
            return ExecutionResult(
                success=True,
                message=f"Pull request #{pr.number} opened for {path}",
                url=pr.url,
                pr_number=pr.number,
            )
        try:
            sha = await self._repository.merge_pull_request(owner, repo, pr.number)
        except ExternalServiceError as e:
            logger.warning("Could not merge pull request #%s: %s", pr.number, e)
            return ExecutionResult(
                success=True,
                message=f"Pull request #{pr.number} opened for {path}; automatic merge failed, review required",
                url=pr.url,
                pr_number=pr.number,
                error=str(e),
            )
        return ExecutionResult(
            success=True,
            message=f"Pull request #{pr.number} merged for {path}",
            url=pr.url,
            pr_number=pr.number,
            merged=True,
            merge_commit_sha=sha,
        )

    async def _deploy(self, solution: Solution) -> ExecutionResult:
        project = solution.metadata.get("project_name") or solution.metadata.get("project_id")
        if self._deployments is None or not project:
            error = "No deployment integration configured" if self._deployments is None else "Missing project identifier"
            logger.warning("Cannot %s: %s", solution.type.value, error, extra={"solution_id": solution.id})
            return ExecutionResult(success=False, message=f"Cannot {solution.type.value}", error=error)

        deployment_id = solution.metadata.get("deployment_id")
        if solution.type == SolutionType.ROLLBACK:
            details = await self._deployments.rollback(project, deployment_id)
            message = f"Rolled back {project}"
        else:
            details = await self._deployments.redeploy(project, deployment_id)
            message = f"Redeployed {project}"
        logger.info(message, extra={"solution_id": solution.id, "details": details})
        return ExecutionResult(success=True, message=message, url=details.get("url"))
