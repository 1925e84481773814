"""
Deterministic demo: the simulated edge-worker outage run end to end against
an in-memory repository and canned research, with no network access.
"""

from __future__ import annotations

from collections.abc import Callable

from outagex.cli import build_orchestrator
from outagex.config import Settings
from outagex.detection.simulator import (
    DEMO_SERVICE,
    SIMULATED_HANDLER_SOURCE,
    SUSPICIOUS_COMMIT_DIFF,
    simulated_commits,
    simulated_research,
)
from outagex.errors import ExternalServiceError
from outagex.integrations.base import (
    DirectoryItem,
    FileContent,
    PullRequest,
    ResearchClient,
    SourceRepositoryClient,
)
from outagex.models import CommitInfo, IncidentStatus, ProjectConfig, ResearchResult

DEMO_OWNER = "outagex-demo"
DEMO_REPO = DEMO_SERVICE

DEMO_FILES = {
    "package.json": '{\n  "name": "edge-worker-api",\n  "main": "src/index.ts"\n}\n',
    "README.md": "# edge-worker-api\n",
    "src/index.ts": "export { handleRequest } from './worker/handler';\n",
    "src/worker/handler.ts": SIMULATED_HANDLER_SOURCE,
    "src/utils/processor.ts": "export function process(data: unknown) {\n  return data;\n}\n",
}


class SimulatedRepositoryClient(SourceRepositoryClient):
    """
    In-memory repository holding the demo files and commit history.

    Branches are copies of the file map; merging a pull request copies the
    head branch back onto the base.
    """

    def __init__(
        self,
        files: dict[str, str] | None = None,
        commits: list[CommitInfo] | None = None,
        diffs: dict[str, str] | None = None,
        default_branch: str = "main",
    ) -> None:
        self.commits = commits if commits is not None else simulated_commits()
        self.diffs = diffs if diffs is not None else {self.commits[0].sha: SUSPICIOUS_COMMIT_DIFF} if self.commits else {}
        self.branches: dict[str, dict[str, str]] = {default_branch: dict(files if files is not None else DEMO_FILES)}
        self.pull_requests: list[PullRequest] = []
        self.merged: list[int] = []

    def _tree(self, ref: str) -> dict[str, str]:
        try:
            return self.branches[ref]
        except KeyError:
            raise ExternalServiceError("repository", f"unknown ref {ref}", status_code=404) from None

    async def get_commits(self, owner: str, repo: str, limit: int = 10) -> list[CommitInfo]:
        return self.commits[:limit]

    async def get_commit_diff(self, owner: str, repo: str, sha: str) -> str:
        return self.diffs.get(sha, "")

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> FileContent:
        tree = self._tree(ref)
        if path not in tree:
            raise ExternalServiceError("repository", f"{path} not found", status_code=404)
        return FileContent(path=path, content=tree[path])

    async def list_directory(self, owner: str, repo: str, path: str, ref: str) -> list[DirectoryItem]:
        prefix = "" if path in ("", ".", "/") else path.strip("/") + "/"
        items: dict[str, DirectoryItem] = {}
        for file_path in self._tree(ref):
            if not file_path.startswith(prefix):
                continue
            name, _, rest = file_path[len(prefix):].partition("/")
            item_type = "dir" if rest else "file"
            items.setdefault(name, DirectoryItem(name=name, path=prefix + name, type=item_type))
        if prefix and not items:
            raise ExternalServiceError("repository", f"{path} not found", status_code=404)
        return sorted(items.values(), key=lambda item: item.name)

    async def create_branch(self, owner: str, repo: str, branch: str, from_ref: str) -> None:
        self.branches[branch] = dict(self._tree(from_ref))

    async def write_file(self, owner: str, repo: str, path: str, content: str, message: str, branch: str) -> None:
        self._tree(branch)[path] = content

    async def open_pull_request(self, owner: str, repo: str, title: str, body: str, head: str, base: str) -> PullRequest:
        number = len(self.pull_requests) + 1
        pr = PullRequest(number=number, url=f"https://github.com/{owner}/{repo}/pull/{number}", head=head, base=base)
        self.pull_requests.append(pr)
        return pr

    async def merge_pull_request(self, owner: str, repo: str, number: int) -> str:
        pr = next((p for p in self.pull_requests if p.number == number), None)
        if pr is None:
            raise ExternalServiceError("repository", f"pull request #{number} not found", status_code=404)
        self.branches[pr.base] = dict(self._tree(pr.head))
        self.merged.append(number)
        return f"merge{number:04d}"


class StaticResearchClient(ResearchClient):
    """Research provider returning a fixed result list."""

    name = "static"

    def __init__(self, results: list[ResearchResult] | None = None) -> None:
        self._results = results if results is not None else simulated_research()

    async def search(self, query: str) -> list[ResearchResult]:
        return list(self._results)


def demo_project(settings: Settings, auto_fix: bool = False) -> ProjectConfig:
    return ProjectConfig(
        project_id="demo",
        name=DEMO_SERVICE,
        auto_fix=auto_fix,
        auto_fix_threshold=settings.default_auto_fix_threshold,
        github_owner=DEMO_OWNER,
        github_repo=DEMO_REPO,
    )


async def run_demo(
    settings: Settings,
    auto_fix: bool = False,
    approve: bool = False,
    out: Callable[[str], None] = print,
) -> bool:
    """
    Run the simulated outage through the full pipeline.

    With auto_fix the gate may apply the fix on its own; otherwise approve
    applies the proposed fix once the pipeline halts. Returns True if the
    incident ended resolved, or is waiting for approval when none was given.
    """
    repository = SimulatedRepositoryClient(default_branch=settings.default_branch)
    orchestrator = build_orchestrator(
        settings,
        repository_client=repository,
        research_clients=[StaticResearchClient()],
        default_project=demo_project(settings, auto_fix),
    )

    out("OutageX demo: edge-worker-api is timing out after a recent deploy.")
    out("")
    await orchestrator.start_incident_response("demo")

    incident, solution = orchestrator.incident, orchestrator.solution
    if incident is None or solution is None:
        out("Result: investigation stopped before a fix was proposed.")
        return False
    if incident.status == IncidentStatus.PROPOSING:
        if not approve:
            out(f"Result: fix proposed ({solution.confidence}% confidence), awaiting approval.")
            return True
        out("Approving proposed fix.")
        await orchestrator.execute_solution(solution.id)

    resolved = orchestrator.incident.status == IncidentStatus.RESOLVED
    for pr in repository.pull_requests:
        out(f"Pull request: {pr.url}")
    out("Result: incident resolved." if resolved else "Result: fix failed.")
    return resolved
