"""Abstract collaborator clients consumed by the incident pipeline."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from outagex.models import CommitInfo, ProjectConfig, ResearchResult


class FileContent(BaseModel):
    path: str
    content: str
    sha: str | None = None


class DirectoryItem(BaseModel):
    name: str
    path: str
    type: str  # "file" or "dir"

    @property
    def is_file(self) -> bool:
        return self.type == "file"

    @property
    def is_dir(self) -> bool:
        return self.type == "dir"


class PullRequest(BaseModel):
    number: int
    url: str
    head: str
    base: str


class SourceRepositoryClient(ABC):
    """
    Source-control platform client.

    Every call names the repository explicitly (owner, repo); failures are
    raised as ExternalServiceError with the HTTP status when one exists.
    """

    @abstractmethod
    async def get_commits(self, owner: str, repo: str, limit: int = 10) -> list[CommitInfo]:
        """Most recent commits first."""

    @abstractmethod
    async def get_commit_diff(self, owner: str, repo: str, sha: str) -> str:
        """Unified diff of one commit."""

    @abstractmethod
    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> FileContent:
        ...

    @abstractmethod
    async def list_directory(self, owner: str, repo: str, path: str, ref: str) -> list[DirectoryItem]:
        """List one directory; "." is the repository root."""

    @abstractmethod
    async def create_branch(self, owner: str, repo: str, branch: str, from_ref: str) -> None:
        ...

    @abstractmethod
    async def write_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: str,
        branch: str,
    ) -> None:
        ...

    @abstractmethod
    async def open_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequest:
        ...

    @abstractmethod
    async def merge_pull_request(self, owner: str, repo: str, number: int) -> str:
        """Merge and return the merge commit SHA."""


class RepositoryHandle:
    """A repository client bound to one owner/repo/ref; read calls only need a path."""

    def __init__(
        self,
        client: SourceRepositoryClient,
        owner: str,
        repo: str,
        ref: str = "main",
    ) -> None:
        self.client = client
        self.owner = owner
        self.repo = repo
        self.ref = ref

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    async def get_commits(self, limit: int = 10) -> list[CommitInfo]:
        return await self.client.get_commits(self.owner, self.repo, limit)

    async def get_commit_diff(self, sha: str) -> str:
        return await self.client.get_commit_diff(self.owner, self.repo, sha)

    async def get_file_content(self, path: str) -> FileContent:
        return await self.client.get_file_content(self.owner, self.repo, path, self.ref)

    async def list_directory(self, path: str = ".") -> list[DirectoryItem]:
        return await self.client.list_directory(self.owner, self.repo, path, self.ref)

    def __repr__(self) -> str:
        return f"RepositoryHandle({self.full_name}@{self.ref})"


class DeploymentClient(ABC):
    """Deployment platform used for rollback and restart solutions."""

    @abstractmethod
    async def rollback(self, project: str, deployment_id: str | None = None) -> dict[str, Any]:
        """Promote the previous deployment; returns platform details (url, id)."""

    @abstractmethod
    async def redeploy(self, project: str, deployment_id: str | None = None) -> dict[str, Any]:
        ...


class ProjectConfigStore(ABC):
    """Read-only lookup of per-project auto-fix settings."""

    @abstractmethod
    async def get(self, project_id: str) -> ProjectConfig | None:
        ...


class InMemoryProjectConfigStore(ProjectConfigStore):
    """Dictionary-backed store (demo, tests, or configs loaded at startup)."""

    def __init__(self, projects: list[ProjectConfig] | None = None) -> None:
        self._projects = {p.project_id: p for p in projects or []}

    def add(self, project: ProjectConfig) -> None:
        self._projects[project.project_id] = project

    async def get(self, project_id: str) -> ProjectConfig | None:
        return self._projects.get(project_id)


class ResearchClient(ABC):
    """One research provider (web search, AI search, ...)."""

    name: str = "research"

    @abstractmethod
    async def search(self, query: str) -> list[ResearchResult]:
        ...


class LanguageModelClient(ABC):
    """Single-shot text completion."""

    @abstractmethod
    async def complete(self, prompt: str, *, temperature: float = 0.3, max_tokens: int = 1024) -> str:
        ...
