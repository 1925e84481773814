"""
Collaborator interfaces.

Source control, deployment, project configuration, research, language model
and sandbox services are consumed through these abstract clients; concrete
platform wrappers live outside the core.
"""

from outagex.integrations.base import (
    DeploymentClient,
    DirectoryItem,
    FileContent,
    InMemoryProjectConfigStore,
    LanguageModelClient,
    ProjectConfigStore,
    PullRequest,
    RepositoryHandle,
    ResearchClient,
    SourceRepositoryClient,
)

__all__ = [
    "DeploymentClient",
    "DirectoryItem",
    "FileContent",
    "InMemoryProjectConfigStore",
    "LanguageModelClient",
    "ProjectConfigStore",
    "PullRequest",
    "RepositoryHandle",
    "ResearchClient",
    "SourceRepositoryClient",
]
